"""Immutable snapshot of a fitted and scheduled pulse train."""
from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
import logging
from typing import Any, Dict, Optional, Tuple

import numpy as np

from pulse_pattern_synthesizer.core import fitter
from pulse_pattern_synthesizer.core import pulse_shapes
from pulse_pattern_synthesizer.core.fitter import PlatformFitResult
from pulse_pattern_synthesizer.core.platforms import PlatformDescriptor
from pulse_pattern_synthesizer.core.pulse_shapes import PulseShape
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.core.scheduler import ScheduledTrain
from pulse_pattern_synthesizer.core.scheduler import concatenate
from pulse_pattern_synthesizer.core.scheduler import TrainScheduler
from pulse_pattern_synthesizer.core.sequence import Channel
from pulse_pattern_synthesizer.core.sequence import Electrodogram
from pulse_pattern_synthesizer.core.sequence import PulseSequence
from pulse_pattern_synthesizer.core.stimulus import StimulationRequest
from pulse_pattern_synthesizer.errors import PulseTrainError

logger = logging.getLogger(__name__)


def _encode(request: StimulationRequest, result: PlatformFitResult) -> PulseShape:
    polarities = fitter.shape_polarities(request)
    return pulse_shapes.encode(
        result.phase_steps,
        result.interphase_steps,
        polarities[0],
        request.asymmetry_ratio,
        request.topology,
        separation_steps=result.separation_steps,
        pulse_gap_steps=result.pulse_gap_steps or 0,
        second_polarity=polarities[-1],
    )


def _framing_block(
    request: StimulationRequest,
    platform: PlatformDescriptor,
    result: PlatformFitResult,
    rng: np.random.Generator,
) -> ScheduledTrain:
    """Schedule one block of pre- or post-stimulus pulses.

    The pulses are biphasic, on the first electrode of the train, with the
    polarity of its first pulse and no trigger.
    """
    framing = result.framing
    if framing is None:
        raise ValueError("The fit result has no pre-stimulus pulses.")
    shape = pulse_shapes.encode(
        framing.phase_steps,
        result.interphase_steps,
        fitter.shape_polarities(request)[0],
        1,
        Topology.BIPHASIC,
    )
    params = TrainScheduler.Params(
        period_us=framing.period_us,
        pulse_count=framing.n_pulses,
        step_us=platform.step_us,
        n_electrodes=platform.n_electrodes,
        period_step_us=platform.period_step_us,
    )
    channels = (Channel(request.electrodes[0], framing.level),)
    return TrainScheduler(params, rng).build(shape, channels)


@dataclass(frozen=True)
class PulseTrain:
    """A request together with everything derived from it for a platform.

    Use :meth:`create` to build one. A snapshot never changes: use
    :meth:`with_changes` to get a new one for different parameters.
    """

    request: StimulationRequest
    platform: PlatformDescriptor
    fit_result: PlatformFitResult
    shape: PulseShape
    scheduled: ScheduledTrain = field(repr=False, compare=False)
    rng: np.random.Generator = field(repr=False, compare=False)

    @classmethod
    def create(
        cls,
        request: StimulationRequest,
        platform: PlatformDescriptor,
        rng: Optional[np.random.Generator] = None,
    ) -> PulseTrain:
        """Validate, fit and schedule a request.

        Args:
            request: The stimulation request.
            platform: The target platform.
            rng: Random generator for jitter. Defaults to a generator seeded
              from the OS.

        Returns:
            The derived pulse train.

        Raises:
            PulseTrainError: If the request can not be played on the platform.
        """
        rng = rng if rng is not None else np.random.default_rng()
        result = fitter.fit(request, platform)
        shape = _encode(request, result)
        scheduled = cls._build(request, platform, result, shape, rng)
        return cls(request, platform, result, shape, scheduled, rng)

    @staticmethod
    def _channels(
        request: StimulationRequest, result: PlatformFitResult
    ) -> Tuple[Channel, ...]:
        return tuple(
            Channel(electrode, amplitude)
            for electrode, amplitude in zip(request.electrodes, result.amplitudes)
        )

    @staticmethod
    def _scheduler(
        request: StimulationRequest,
        platform: PlatformDescriptor,
        result: PlatformFitResult,
        rng: np.random.Generator,
    ) -> TrainScheduler:
        params = TrainScheduler.Params(
            period_us=result.period_us,
            pulse_count=result.n_pulses,
            step_us=platform.step_us,
            n_electrodes=platform.n_electrodes,
            min_period_us=result.min_period_us,
            period_step_us=platform.period_step_us,
            amplitude_step=result.amplitude_step,
            amplitude_range=result.amplitude_range,
            trigger_dur_us=request.trigger_dur_us,
        )
        return TrainScheduler(params, rng)

    @classmethod
    def _build(
        cls,
        request: StimulationRequest,
        platform: PlatformDescriptor,
        result: PlatformFitResult,
        shape: PulseShape,
        rng: np.random.Generator,
    ) -> ScheduledTrain:
        main = cls._scheduler(request, platform, result, rng).build(
            shape,
            cls._channels(request, result),
            alternating=request.alternating,
            modulator=request.modulator,
            jitter_window_us=request.jitter_window_us,
            trigger=request.trigger,
        )
        if result.framing is None:
            return main
        framing = _framing_block(request, platform, result, rng)
        return concatenate([framing, main, framing])

    def with_changes(self, **changes: Any) -> PulseTrain:
        """Derive a new pulse train with some request parameters changed.

        Args:
            changes: Request fields to change, e.g. `levels=(120,)`.

        Returns:
            A new pulse train. This one is left untouched.

        Raises:
            PulseTrainError: If the changed request can not be played. The
              current pulse train stays valid.
        """
        try:
            request = replace(self.request, **changes)
            return PulseTrain.create(request, self.platform, self.rng)
        except PulseTrainError as error:
            logger.warning(f"Rejected change {changes}: {error}")
            raise

    def validate(self):
        """Check the request against the platform again."""
        fitter.validate(self.request, self.platform)

    def fit(self) -> PlatformFitResult:
        """Fit the request again. The result equals :attr:`fit_result`."""
        return fitter.fit(self.request, self.platform)

    def schedule(self, rng: Optional[np.random.Generator] = None) -> ScheduledTrain:
        """Schedule the train again, e.g. to draw a new jitter permutation.

        Args:
            rng: Random generator to use instead of the one of the snapshot.
        """
        rng = rng if rng is not None else self.rng
        return self._build(
            self.request, self.platform, self.fit_result, self.shape, rng
        )

    @property
    def sequence(self) -> PulseSequence:
        """Device-ready commands of the train."""
        return self.scheduled.sequence

    @property
    def electrodogram(self) -> Electrodogram:
        """Traces of the train, one per electrode."""
        return self.scheduled.electrodogram

    @property
    def whole_duration_s(self) -> float:
        """Duration of the whole train, including the silence of the last period."""
        return float(np.sum(self.scheduled.periods_us)) * 1e-6

    def level_dbua(self) -> Tuple[float, ...]:
        """Fitted level of each pulse in dB re 1 uA."""
        return tuple(
            float(self.platform.level_dbua(amplitude, self.request.level_range))
            for amplitude in self.fit_result.amplitudes
        )

    def struct(self) -> Dict[str, Any]:
        """Flat dictionary of the requested and the actual parameters."""
        request = self.request
        result = self.fit_result
        framing = result.framing
        return {
            "platform": self.platform.name,
            "topology": request.topology.value,
            "electrodes": list(request.electrodes),
            "polarity": [polarity.value for polarity in request.polarity],
            "phase_dur_us": request.phase_dur_us,
            "interphase_dur_us": request.interphase_dur_us,
            "rate_pps": request.rate_pps,
            "levels": list(request.levels),
            "max_levels": list(request.max_levels),
            "duration_s": request.duration_s,
            "asymmetry_ratio": request.asymmetry_ratio,
            "pulse_gap_us": request.pulse_gap_us,
            "jitter_window_us": request.jitter_window_us,
            "modulated": request.modulator is not None,
            "trigger": request.trigger.value,
            "trigger_dur_us": request.trigger_dur_us,
            "level_range": request.level_range,
            "actual_phase_dur_us": result.phase_dur_us,
            "actual_interphase_dur_us": result.interphase_dur_us,
            "actual_rate_pps": result.rate_pps,
            "actual_period_us": result.period_us,
            "actual_levels": list(result.amplitudes),
            "actual_pulse_gap_us": result.pulse_gap_us,
            "amplitude_range": result.amplitude_range,
            "amplitude_step": result.amplitude_step,
            "n_pulses": result.n_pulses,
            "level_dbua": list(self.level_dbua()),
            "whole_duration_s": self.whole_duration_s,
            "framing_rate_pps": framing.rate_pps if framing else None,
            "framing_level": framing.level if framing else None,
            "framing_n_pulses": framing.n_pulses if framing else None,
        }
