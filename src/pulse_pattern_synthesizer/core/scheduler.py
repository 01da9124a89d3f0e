"""Lay out the pulses of a train in time.

The scheduler replicates one encoded pulse shape at the fitted period. It
compresses the train into a single periodic buffer command whenever every
pulse is identical. Otherwise (modulation, jitter or alternating polarity) it
emits one command per pulse.
"""
from dataclasses import dataclass
import logging
from typing import List, Optional, Sequence, Tuple

from numpy import ndarray
import numpy as np

from pulse_pattern_synthesizer.core import quantization
from pulse_pattern_synthesizer.core.pulse_shapes import PulseShape
from pulse_pattern_synthesizer.core.sequence import Channel
from pulse_pattern_synthesizer.core.sequence import Command
from pulse_pattern_synthesizer.core.sequence import Electrodogram
from pulse_pattern_synthesizer.core.sequence import ElectrodeTrace
from pulse_pattern_synthesizer.core.sequence import PeriodicBufferCommand
from pulse_pattern_synthesizer.core.sequence import PulseCommand
from pulse_pattern_synthesizer.core.sequence import PulseSequence
from pulse_pattern_synthesizer.core.stimulus import Modulator
from pulse_pattern_synthesizer.core.stimulus import TriggerMode
from pulse_pattern_synthesizer.errors import AchievabilityError

logger = logging.getLogger(__name__)

# Periods shorter than the minimum by less than this are rounding noise.
_PERIOD_TOLERANCE_US = 1e-6


@dataclass(frozen=True, eq=False)
class ScheduledTrain:
    """The scheduled pulses, in device-ready and in trace form."""

    sequence: PulseSequence
    electrodogram: Electrodogram
    start_times_s: ndarray
    """Start time of each pulse (period) of the train."""

    periods_us: ndarray
    """Duration of each period of the train."""


class TrainScheduler:
    """Replicate a pulse shape into a train of pulses."""

    @dataclass
    class Params:
        """Initialization parameters for the :class:`TrainScheduler` class."""

        period_us: float
        """Nominal period of the train."""

        pulse_count: int
        step_us: float
        """Duration of one shape step."""

        n_electrodes: int
        """Number of electrode slots in the electrodogram."""

        min_period_us: float = 0.0
        """Jittered periods must not be shorter than this."""

        period_step_us: Optional[float] = None
        """Resolution of jittered periods. Defaults to `step_us`."""

        amplitude_step: float = 1.0
        """Resolution of modulated amplitudes."""

        amplitude_range: float = np.inf
        """Upper limit of modulated amplitudes."""

        trigger_dur_us: float = 10.0
        """Duration of each trigger."""

        def __post_init__(self):
            """Validate parameters."""
            if self.period_us <= 0:
                raise ValueError("The period must be positive.")
            if self.pulse_count < 1:
                raise ValueError("A train needs at least one pulse.")
            if self.step_us <= 0 or self.amplitude_step <= 0:
                raise ValueError("Steps must be positive.")
            if self.period_step_us is None:
                self.period_step_us = self.step_us

    def __init__(self, params: Params, rng: Optional[np.random.Generator] = None):
        """Initialize the TrainScheduler class.

        Args:
            params: The scheduler parameters.
            rng: Random generator used to shuffle jitter offsets.
              Defaults to a generator seeded from the OS.
        """
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng()

    def jittered_periods(self, jitter_window_us: float) -> ndarray:
        """Get the periods of the train with shuffled jitter offsets.

        The offsets are evenly spread over the window, centered on zero, and
        permuted. Every call uses the same offsets, only their order changes.

        Args:
            jitter_window_us: Width of the jitter window.

        Returns:
            One period per pulse, rounded to the period step.

        Raises:
            AchievabilityError: If a jittered period is shorter than the
              minimum period.
        """
        n = self.params.pulse_count
        if jitter_window_us > 0 and n > 1:
            offsets = np.linspace(-jitter_window_us / 2, jitter_window_us / 2, n)
        else:
            offsets = np.zeros(n)
        offsets = self.rng.permutation(offsets)
        step = self.params.period_step_us
        periods = quantization.round_half_up((self.params.period_us + offsets) / step)
        periods = periods * step
        shortest = periods.min()
        if shortest < self.params.min_period_us - _PERIOD_TOLERANCE_US:
            raise AchievabilityError(
                1e6 / shortest,
                1e6 / self.params.min_period_us,
                f"A jitter window of {jitter_window_us} us is too wide.",
            )
        return periods

    def build(
        self,
        shape: PulseShape,
        channels: Tuple[Channel, ...],
        alternating: bool = False,
        modulator: Optional[Modulator] = None,
        jitter_window_us: float = 0.0,
        trigger: TriggerMode = TriggerMode.NONE,
    ) -> ScheduledTrain:
        """Schedule the pulses of a train.

        Args:
            shape: The encoded pulse shape.
            channels: One channel per pulse of the shape.
            alternating: Invert the polarity of every other pulse.
            modulator: Optional amplitude modulator.
            jitter_window_us: Width of the period jitter window, 0 disables
              jitter.
            trigger: Which pulses carry a trigger.

        Returns:
            The scheduled train.
        """
        n = self.params.pulse_count
        if jitter_window_us > 0:
            periods_us = self.jittered_periods(jitter_window_us)
        else:
            periods_us = np.full(n, float(self.params.period_us))
        start_times_us = np.concatenate(([0.0], np.cumsum(periods_us)[:-1]))
        start_times_s = start_times_us * 1e-6

        signs = np.ones(n)
        if alternating:
            signs[1::2] = -1.0
        amplitudes = np.tile([c.amplitude for c in channels], (n, 1))
        if modulator is not None:
            amplitudes = self._modulate(amplitudes, modulator.sample(start_times_s))

        uniform = modulator is None and jitter_window_us <= 0 and not alternating
        if uniform:
            commands = self._periodic_commands(shape, channels, trigger)
        else:
            commands = self._pulse_commands(
                shape, channels, periods_us, signs, amplitudes, trigger
            )
        sequence = PulseSequence(tuple(commands), self.params.step_us)
        electrodogram = self._electrodogram(
            shape, channels, start_times_us, signs[:, np.newaxis] * amplitudes
        )
        logger.debug(
            f"Scheduled {n} pulses in {len(sequence)} commands "
            f"on electrodes {electrodogram.active_electrodes}"
        )
        return ScheduledTrain(sequence, electrodogram, start_times_s, periods_us)

    def _modulate(self, amplitudes: ndarray, weights: ndarray) -> ndarray:
        step = self.params.amplitude_step
        modulated = amplitudes * weights[:, np.newaxis]
        modulated = quantization.round_half_up(modulated / step) * step
        return np.clip(modulated, 0.0, self.params.amplitude_range)

    def _periodic_commands(
        self,
        shape: PulseShape,
        channels: Tuple[Channel, ...],
        trigger: TriggerMode,
    ) -> List[Command]:
        n = self.params.pulse_count
        pulse = PulseCommand(
            shape,
            channels,
            self.params.period_us,
            trigger=trigger == TriggerMode.ALL,
            trigger_dur_us=self.params.trigger_dur_us,
        )
        if trigger != TriggerMode.FIRST:
            return [PeriodicBufferCommand(pulse, n)]
        commands: List[Command] = [
            PulseCommand(
                shape,
                channels,
                self.params.period_us,
                trigger=True,
                trigger_dur_us=self.params.trigger_dur_us,
            )
        ]
        if n > 1:
            commands.append(PeriodicBufferCommand(pulse, n - 1))
        return commands

    def _pulse_commands(
        self,
        shape: PulseShape,
        channels: Tuple[Channel, ...],
        periods_us: ndarray,
        signs: ndarray,
        amplitudes: ndarray,
        trigger: TriggerMode,
    ) -> List[Command]:
        commands: List[Command] = []
        for i, (period, sign, levels) in enumerate(zip(periods_us, signs, amplitudes)):
            pulse_channels = tuple(
                Channel(channel.electrode, float(level))
                for channel, level in zip(channels, levels)
            )
            triggered = trigger == TriggerMode.ALL or (
                trigger == TriggerMode.FIRST and i == 0
            )
            commands.append(
                PulseCommand(
                    shape,
                    pulse_channels,
                    float(period),
                    float(sign),
                    triggered,
                    self.params.trigger_dur_us,
                )
            )
        return commands

    def _electrodogram(
        self,
        shape: PulseShape,
        channels: Tuple[Channel, ...],
        start_times_us: ndarray,
        amplitudes: ndarray,
    ) -> Electrodogram:
        """Build the traces of every electrode.

        Args:
            shape: The encoded pulse shape.
            channels: One channel per pulse of the shape.
            start_times_us: Start time of each period.
            amplitudes: Signed amplitude of each channel, one row per period.
        """
        step = self.params.step_us
        per_electrode = {}
        for pulse_index, channel in enumerate(channels):
            offsets, levels = shape.breakpoints(pulse_index)
            times = start_times_us[:, np.newaxis] + offsets[np.newaxis, :] * step
            values = amplitudes[:, pulse_index, np.newaxis] * levels[np.newaxis, :]
            per_electrode.setdefault(channel.electrode, []).append((times, values))

        traces = list(Electrodogram.empty(self.params.n_electrodes).traces)
        for electrode, parts in per_electrode.items():
            # Columns of the same row belong to the same period, in time order.
            times = np.hstack([part[0] for part in parts])
            values = np.hstack([part[1] for part in parts])
            pulse_starts = np.column_stack([part[0][:, 0] for part in parts])
            traces[electrode - 1] = ElectrodeTrace(
                times.ravel() * 1e-6,
                values.ravel(),
                pulse_starts.ravel() * 1e-6,
            )
        return Electrodogram(tuple(traces))


def concatenate(trains: Sequence[ScheduledTrain]) -> ScheduledTrain:
    """Play scheduled trains one after the other.

    Each train starts when the last period of the previous one ends.

    Args:
        trains: The trains in playing order, all scheduled with the same step
          and number of electrodes.

    Returns:
        A single train holding the commands and traces of all the trains.

    Raises:
        ValueError: If no train is given or the steps differ.
    """
    if not trains:
        raise ValueError("Nothing to concatenate.")
    step_us = trains[0].sequence.step_us
    if any(train.sequence.step_us != step_us for train in trains):
        raise ValueError("Trains with different steps can not be concatenated.")
    durations_us = [float(np.sum(train.periods_us)) for train in trains]
    offsets_us = np.concatenate(([0.0], np.cumsum(durations_us)[:-1]))

    commands: List[Command] = []
    for train in trains:
        commands.extend(train.sequence)

    n_electrodes = len(trains[0].electrodogram.traces)
    traces = []
    for electrode_index in range(n_electrodes):
        parts = [
            (train.electrodogram.traces[electrode_index], offset * 1e-6)
            for train, offset in zip(trains, offsets_us)
        ]
        parts = [(trace, offset) for trace, offset in parts if not trace.empty]
        if not parts:
            traces.append(ElectrodeTrace.empty_trace())
            continue
        traces.append(
            ElectrodeTrace(
                np.concatenate([trace.t_s + offset for trace, offset in parts]),
                np.concatenate([trace.amplitude for trace, _ in parts]),
                np.concatenate(
                    [trace.pulse_start_times_s + offset for trace, offset in parts]
                ),
            )
        )

    return ScheduledTrain(
        PulseSequence(tuple(commands), step_us),
        Electrodogram(tuple(traces)),
        np.concatenate(
            [
                train.start_times_s + offset * 1e-6
                for train, offset in zip(trains, offsets_us)
            ]
        ),
        np.concatenate([train.periods_us for train in trains]),
    )
