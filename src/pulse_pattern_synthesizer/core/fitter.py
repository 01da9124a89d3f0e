"""Fit a stimulation request to what a platform can actually produce.

Fitting runs in three stages:

1. :func:`validate` checks the request against the platform capabilities and
   the timing budget. Nothing is derived when it fails.
2. :func:`fit` rounds the phase and gap durations to the platform step, fits
   the period (buffer size and repeat count on buffered platforms, period step
   on direct platforms), fits the gap between the two pulses of a two-pulse
   train, fits the optional pre- and post-stimulus pulses and quantizes the
   amplitudes.
3. The result is a frozen :class:`PlatformFitResult` that is fully recomputed
   whenever the request changes.
"""
from dataclasses import dataclass
import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from pulse_pattern_synthesizer.core import quantization
from pulse_pattern_synthesizer.core.platforms import PlatformDescriptor
from pulse_pattern_synthesizer.core.pulse_shapes import Polarity
from pulse_pattern_synthesizer.core.pulse_shapes import PulseShape
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.core.sequence import PeriodicBufferCommand
from pulse_pattern_synthesizer.core.sequence import PulseCommand
from pulse_pattern_synthesizer.core.sequence import PulseSequence
from pulse_pattern_synthesizer.core.stimulus import Framing
from pulse_pattern_synthesizer.core.stimulus import StimulationRequest
from pulse_pattern_synthesizer.errors import AchievabilityError
from pulse_pattern_synthesizer.errors import BufferOverflowError
from pulse_pattern_synthesizer.errors import ValidationError

logger = logging.getLogger(__name__)

POWER_UP_STEP_US = 0.2
POWER_UP_MIN_PULSE_US = 65.0
POWER_UP_MAX_PULSE_US = 1000.0


@dataclass(frozen=True)
class BufferLayout:
    """How one period is laid out in the periodic buffers of the platform."""

    buffer_steps: int
    """Length of the buffer holding the pulse(s), padding included."""

    padding_steps: int
    """Zero steps appended after the pulse(s) in the buffer."""

    zero_buffers: int
    """Empty buffers played after the pulse buffer in each period."""

    second_pulse_offset_steps: int = 0
    """Two-pulse only: steps the second pulse is shifted by within a buffer."""

    second_pulse_buffer_offset: int = 0
    """Two-pulse only: whole buffers the second pulse is shifted by."""

    @property
    def buffers_per_period(self) -> int:
        """Number of buffers played in one period."""
        return self.zero_buffers + 1


@dataclass(frozen=True)
class FramingFit:
    """Pre- and post-stimulus pulses as the platform produces them."""

    rate_pps: float
    period_us: float
    phase_dur_us: float
    phase_steps: int
    level: float
    n_pulses: int
    """Number of pulses in each of the pre- and post-stimulus blocks."""

    @property
    def duration_us(self) -> float:
        """Duration of one block."""
        return self.n_pulses * self.period_us


@dataclass(frozen=True)
class PlatformFitResult:
    """Parameters actually produced by the platform for a request."""

    rate_pps: float
    period_us: float
    phase_dur_us: float
    interphase_dur_us: float
    phase_steps: int
    interphase_steps: int
    amplitudes: Tuple[float, ...]
    """Quantized level of each pulse of the topology."""

    amplitude_range: float
    """Upper limit of the amplitude range in use."""

    amplitude_step: float
    n_pulses: int
    """Number of pulses (periods) in the train."""

    min_period_us: float
    pulse_gap_us: Optional[float] = None
    pulse_gap_steps: Optional[int] = None
    separation_steps: int = 0
    """Gap between the two halves of a quadraphasic pulse."""

    layout: Optional[BufferLayout] = None
    """Buffer layout, only for buffered platforms."""

    framing: Optional[FramingFit] = None
    """Pre- and post-stimulus pulses, only when the request asks for them."""

    @property
    def duration_us(self) -> float:
        """Duration of the whole train."""
        return self.n_pulses * self.period_us


@dataclass(frozen=True)
class PowerUpFit:
    """Null pulses that keep an implant powered for a given duration."""

    pulse_dur_us: float
    n_pulses: int

    @property
    def duration_us(self) -> float:
        """Duration actually covered by the null pulses."""
        return self.pulse_dur_us * self.n_pulses

    def to_sequence(self) -> PulseSequence:
        """Build the sequence that plays the null pulses back to back."""
        steps = quantization.to_steps(self.pulse_dur_us, POWER_UP_STEP_US)
        pulse = PulseCommand(PulseShape.null(steps), (), self.pulse_dur_us)
        return PulseSequence(
            (PeriodicBufferCommand(pulse, self.n_pulses),), POWER_UP_STEP_US
        )


def _active_duration(topology: Topology, p: float, g: float, ratio: int) -> float:
    """Duration of one pulse of the topology, without separations.

    Works on steps as well as on microseconds.
    """
    if topology in (Topology.BIPHASIC, Topology.TWO_PULSE):
        return (ratio + 1) * p + g
    if topology == Topology.TRIPHASIC:
        return 3 * p + 2 * g
    if topology == Topology.PRECISION_TRIPHASIC:
        return 2 * p + 2 * g
    if topology == Topology.QUADRAPHASIC:
        return 2 * (2 * p + g)
    raise ValidationError(f"Unknown topology {topology}.")


def _period_floor_us(
    request: StimulationRequest, platform: PlatformDescriptor, active_us: float
) -> float:
    min_gap = platform.min_inter_pulse_gap_us
    if request.topology == Topology.TWO_PULSE:
        return 2 * active_us + request.pulse_gap_us + min_gap
    if request.topology == Topology.QUADRAPHASIC:
        return active_us + 2 * min_gap
    return active_us + min_gap


def minimum_period_us(
    request: StimulationRequest, platform: PlatformDescriptor
) -> float:
    """Shortest period the platform can play the requested pulse with.

    Uses the phase and gap durations as requested, before any rounding to the
    platform step.
    """
    active_us = _active_duration(
        request.topology,
        request.phase_dur_us,
        request.interphase_dur_us,
        request.asymmetry_ratio,
    )
    return _period_floor_us(request, platform, active_us)


def max_rate_pps(request: StimulationRequest, platform: PlatformDescriptor) -> float:
    """Highest rate the requested pulse can be played at."""
    return 1e6 / minimum_period_us(request, platform)


def framing_max_rate_pps(
    request: StimulationRequest, platform: PlatformDescriptor
) -> float:
    """Highest rate the pre- and post-stimulus pulses can be played at."""
    framing = request.framing
    if framing is None:
        raise ValidationError("The request has no pre- and post-stimulus pulses.")
    active_us = _active_duration(
        Topology.BIPHASIC, framing.phase_dur_us, request.interphase_dur_us, 1
    )
    return 1e6 / (active_us + platform.min_inter_pulse_gap_us)


def _check_range(name: str, value: float, low: float, high: float):
    if value < low or value > high:
        raise ValidationError(
            f"{name} of {value} us is outside of the platform range [{low}, {high}]."
        )


def _validate_levels(request: StimulationRequest, platform: PlatformDescriptor):
    for level, max_level in zip(request.levels, request.max_levels):
        if level > max_level:
            raise ValidationError(
                f"Level {level} is above the maximum allowed level {max_level}."
            )
        if level > platform.max_amplitude:
            raise ValidationError(
                f"Level {level} is above the {platform.name} maximum "
                f"{platform.max_amplitude} {platform.amplitude_unit}."
            )
    if request.level_range >= platform.selectable_ranges:
        raise ValidationError(
            f"{platform.name} has {platform.selectable_ranges} level range(s), "
            f"range {request.level_range} does not exist."
        )
    if request.range_max_levels is None:
        return
    if len(request.range_max_levels) != platform.selectable_ranges:
        raise ValidationError(
            f"{platform.name} needs one maximum level per range "
            f"({platform.selectable_ranges}), got {len(request.range_max_levels)}."
        )
    range_max_level = request.range_max_levels[request.level_range]
    for level in request.levels:
        if level > range_max_level:
            raise ValidationError(
                f"Level {level} is above the maximum level {range_max_level} "
                f"of range {request.level_range}."
            )


def validate(request: StimulationRequest, platform: PlatformDescriptor):
    """Check that the platform can play the request.

    Args:
        request: The stimulation request.
        platform: The target platform.

    Raises:
        ValidationError: If a parameter is not supported by the platform or an
          amplitude is above its maximum.
        AchievabilityError: If the rate of the train or of its pre- and
          post-stimulus pulses is too high for the pulse durations.
    """
    _validate_levels(request, platform)
    if request.topology not in platform.topologies:
        raise ValidationError(
            f"{platform.name} does not support {request.topology.value} pulses."
        )
    if request.asymmetry_ratio not in platform.asymmetry_ratios:
        raise ValidationError(
            f"{platform.name} does not support an asymmetry ratio of "
            f"{request.asymmetry_ratio}."
        )
    if request.alternating and not platform.supports_alternating_polarity:
        raise ValidationError(f"{platform.name} does not support alternating polarity.")
    if request.modulator is not None and not platform.supports_modulation:
        raise ValidationError(f"{platform.name} does not support modulation.")
    if request.jitter_window_us > 0 and not platform.supports_jitter:
        raise ValidationError(f"{platform.name} does not support jitter.")
    for electrode in request.electrodes:
        if electrode < 1 or electrode > platform.n_electrodes:
            raise ValidationError(
                f"Electrode {electrode} does not exist, {platform.name} has "
                f"electrodes 1 to {platform.n_electrodes}."
            )
    _check_range(
        "Phase duration",
        request.phase_dur_us,
        platform.min_phase_us,
        platform.max_phase_us,
    )
    _check_range(
        "Interphase gap",
        request.interphase_dur_us,
        platform.min_interphase_us,
        platform.max_interphase_us,
    )

    max_rate = max_rate_pps(request, platform)
    if request.rate_pps > max_rate:
        raise AchievabilityError(
            request.rate_pps,
            max_rate,
            f"phase {request.phase_dur_us} us and gap "
            f"{request.interphase_dur_us} us are too long.",
        )
    if request.framing is not None:
        _validate_framing(request, request.framing, platform)


def _validate_framing(
    request: StimulationRequest, framing: Framing, platform: PlatformDescriptor
):
    if not platform.supports_framing:
        raise ValidationError(
            f"{platform.name} does not support pre- and post-stimulus pulses."
        )
    if framing.level > platform.max_amplitude:
        raise ValidationError(
            f"Pre-stimulus level {framing.level} is above the {platform.name} "
            f"maximum {platform.max_amplitude} {platform.amplitude_unit}."
        )
    _check_range(
        "Pre-stimulus phase duration",
        framing.phase_dur_us,
        platform.min_phase_us,
        platform.max_phase_us,
    )
    max_rate = framing_max_rate_pps(request, platform)
    if framing.rate_pps > max_rate:
        raise AchievabilityError(
            framing.rate_pps,
            max_rate,
            f"Pre-stimulus phase {framing.phase_dur_us} us and gap "
            f"{request.interphase_dur_us} us are too long.",
        )


def _quantize_levels(
    levels: Sequence[float], platform: PlatformDescriptor, asymmetry_ratio: int = 1
) -> Tuple[Tuple[float, ...], float, float]:
    upper_limit = platform.amplitude_range(max(levels))
    step = platform.amplitude_step(upper_limit, asymmetry_ratio)
    # The highest level on the grid can be below the range upper limit.
    top = np.floor(upper_limit / step + 1e-9) * step
    quantized = np.clip(
        quantization.round_half_up(np.asarray(levels, dtype=float) / step) * step,
        0,
        top,
    )
    return tuple(float(level) for level in quantized), upper_limit, step



def _fit_buffered(
    request: StimulationRequest,
    platform: PlatformDescriptor,
    p: int,
    g: int,
):
    """Fit the period as a padded buffer repeated a whole number of times."""
    step = platform.step_us
    capacity = platform.buffer_capacity_steps
    pulse_steps = _active_duration(request.topology, p, g, request.asymmetry_ratio)
    required = pulse_steps * request.n_pulses
    if required > capacity:
        raise BufferOverflowError(required, capacity)

    candidates = step * (required + np.arange(capacity - required + 1))
    fitted = quantization.best_multiple(1e6 / request.rate_pps, candidates)
    padding = fitted.index
    layout = BufferLayout(
        buffer_steps=required + padding,
        padding_steps=padding,
        zero_buffers=fitted.multiplier - 1,
    )
    logger.debug(
        f"Buffer of {layout.buffer_steps} steps ({padding} padding), "
        f"followed by {layout.zero_buffers} zero buffers"
    )

    pulse_gap_steps = None
    if request.topology == Topology.TWO_PULSE:
        layout, pulse_gap_steps = _fit_pulse_gap(
            request.pulse_gap_us, step, layout
        )
    return fitted.value, layout, pulse_gap_steps


def _fit_pulse_gap(pulse_gap_us: float, step: float, layout: BufferLayout):
    """Fit the gap between the pulses of a two-pulse train.

    The second pulse is shifted by a whole number of buffers plus an offset
    within the padding of a buffer.
    """
    buffer_shifts = np.arange(layout.zero_buffers + 1)
    offsets = np.arange(layout.padding_steps + 1)
    gap_steps = (
        buffer_shifts[:, np.newaxis] * layout.buffer_steps + offsets[np.newaxis, :]
    ).ravel()
    fitted = quantization.nearest(pulse_gap_us, gap_steps * step)
    buffer_offset, offset = divmod(fitted.index, len(offsets))
    layout = BufferLayout(
        buffer_steps=layout.buffer_steps,
        padding_steps=layout.padding_steps,
        zero_buffers=layout.zero_buffers,
        second_pulse_offset_steps=int(offset),
        second_pulse_buffer_offset=int(buffer_offset),
    )
    return layout, int(gap_steps[fitted.index])


def _round_period(period_us: float, step: float, min_period_us: float) -> float:
    """Round a period to the step, but never below the minimum period."""
    period_us = quantization.round_to_step(period_us, step)
    if period_us < min_period_us:
        period_us = np.ceil(min_period_us / step - 1e-9) * step
    return float(period_us)


def _fit_direct(
    request: StimulationRequest, platform: PlatformDescriptor, min_period_us: float
):
    """Fit the period to the period step of the platform."""
    period_us = _round_period(
        1e6 / request.rate_pps, platform.period_step_us, min_period_us
    )
    pulse_gap_steps = None
    if request.topology == Topology.TWO_PULSE:
        pulse_gap_steps = quantization.to_steps(request.pulse_gap_us, platform.step_us)
    return period_us, pulse_gap_steps


def _fit_framing(
    request: StimulationRequest, framing: Framing, platform: PlatformDescriptor, g: int
) -> FramingFit:
    """Fit the pre- and post-stimulus pulses to the platform grid."""
    step = platform.step_us
    phase_steps = quantization.to_steps(framing.phase_dur_us, step)
    fitted_active_us = _active_duration(Topology.BIPHASIC, phase_steps, g, 1) * step
    min_period_us = max(
        1e6 / framing_max_rate_pps(request, platform),
        fitted_active_us + platform.min_inter_pulse_gap_us,
    )
    period_us = _round_period(
        1e6 / framing.rate_pps, platform.period_step_us, min_period_us
    )
    n_pulses = max(
        1, int(quantization.round_half_up(framing.duration_s * 1e6 / period_us))
    )
    (level,), _, _ = _quantize_levels((framing.level,), platform)
    return FramingFit(
        rate_pps=1e6 / period_us,
        period_us=period_us,
        phase_dur_us=phase_steps * step,
        phase_steps=phase_steps,
        level=level,
        n_pulses=n_pulses,
    )


def fit(request: StimulationRequest, platform: PlatformDescriptor) -> PlatformFitResult:
    """Derive the parameters the platform will actually produce.

    Args:
        request: The stimulation request.
        platform: The target platform.

    Returns:
        The fitted parameters. Fitting the same request twice gives equal
        results.

    Raises:
        ValidationError: See :func:`validate`.
        AchievabilityError: See :func:`validate`.
        BufferOverflowError: If the pulse does not fit in the platform buffer.
    """
    validate(request, platform)

    step = platform.step_us
    p = quantization.to_steps(request.phase_dur_us, step)
    g = quantization.to_steps(request.interphase_dur_us, step)
    if p < 1:
        raise ValidationError(
            f"Phase duration {request.phase_dur_us} us is shorter than one "
            f"{step} us step."
        )
    # The fitted pulse can be slightly longer than the requested one.
    fitted_active_steps = _active_duration(
        request.topology, p, g, request.asymmetry_ratio
    )
    min_period = max(
        minimum_period_us(request, platform),
        _period_floor_us(request, platform, fitted_active_steps * step),
    )

    layout = None
    if platform.is_buffered:
        period_us, layout, pulse_gap_steps = _fit_buffered(request, platform, p, g)
    else:
        period_us, pulse_gap_steps = _fit_direct(request, platform, min_period)
    rate_pps = 1e6 / period_us
    n_pulses = max(1, int(quantization.round_half_up(request.duration_s * rate_pps)))
    amplitudes, amplitude_range, amplitude_step = _quantize_levels(
        request.levels, platform, request.asymmetry_ratio
    )
    framing = None
    if request.framing is not None:
        framing = _fit_framing(request, request.framing, platform, g)
        logger.debug(
            f"Pre- and post-stimulus: {framing.n_pulses} pulses of "
            f"{framing.period_us:.3f} us at level {framing.level:g}"
        )

    separation_steps = 0
    if request.topology == Topology.QUADRAPHASIC:
        separation_steps = quantization.to_steps(platform.min_inter_pulse_gap_us, step)

    result = PlatformFitResult(
        rate_pps=rate_pps,
        period_us=period_us,
        phase_dur_us=p * step,
        interphase_dur_us=g * step,
        phase_steps=p,
        interphase_steps=g,
        amplitudes=amplitudes,
        amplitude_range=amplitude_range,
        amplitude_step=amplitude_step,
        n_pulses=n_pulses,
        min_period_us=min_period,
        pulse_gap_us=None if pulse_gap_steps is None else pulse_gap_steps * step,
        pulse_gap_steps=pulse_gap_steps,
        separation_steps=separation_steps,
        layout=layout,
        framing=framing,
    )
    logger.info(
        f"Fitted {request.rate_pps} pps to {rate_pps:.3f} pps "
        f"({n_pulses} pulses of {period_us:.3f} us) on {platform.name}"
    )
    return result


def shape_polarities(request: StimulationRequest) -> Tuple[Polarity, ...]:
    """Polarity of the first phase of each pulse in the encoded shape.

    Alternating pulses start negative, the scheduler inverts every other one.
    """
    return tuple(
        Polarity.NEGATIVE if polarity == Polarity.ALTERNATING else polarity
        for polarity in request.polarity
    )


def fit_power_up(duration_s: float) -> PowerUpFit:
    """Choose null pulses that tile `duration_s` as closely as possible.

    Args:
        duration_s: Duration the implant must be kept powered.

    Returns:
        The null pulse duration and the number of null pulses.

    Raises:
        ValidationError: If the duration is not positive.
    """
    if not duration_s > 0:
        raise ValidationError("The power-up duration must be positive.")
    n_candidates = (
        int(round((POWER_UP_MAX_PULSE_US - POWER_UP_MIN_PULSE_US) / POWER_UP_STEP_US))
        + 1
    )
    candidates = np.linspace(POWER_UP_MIN_PULSE_US, POWER_UP_MAX_PULSE_US, n_candidates)
    fitted = quantization.best_multiple(duration_s * 1e6, candidates)
    power_up = PowerUpFit(float(candidates[fitted.index]), fitted.multiplier)
    logger.debug(
        f"Power-up with {power_up.n_pulses} null pulses of "
        f"{power_up.pulse_dur_us:.1f} us"
    )
    return power_up
