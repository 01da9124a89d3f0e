"""Encode elementary stimulation pulses as ordered lists of phases.

Durations are expressed in platform steps and amplitudes are normalized, so
that a phase of amplitude `-1` is played at the full (negative) level of its
channel. The same shape is reused for every pulse of a train and scaled by
the scheduler.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
from typing import Optional, Tuple

from numpy import ndarray
import numpy as np

from pulse_pattern_synthesizer.errors import ValidationError

ASYMMETRY_RATIOS = (1, 2, 4, 8, 16, 32)


class Topology(str, Enum):
    """Possible pulse topologies."""

    BIPHASIC = "biphasic"
    TRIPHASIC = "triphasic"
    PRECISION_TRIPHASIC = "precision_triphasic"
    QUADRAPHASIC = "quadraphasic"
    TWO_PULSE = "two_pulse"

    @property
    def n_pulses(self) -> int:
        """Number of independently addressed pulses in one shape."""
        return 2 if self == Topology.TWO_PULSE else 1


class Polarity(str, Enum):
    """Polarity of the first phase of a pulse."""

    NEGATIVE = "-"
    POSITIVE = "+"
    ALTERNATING = "alt"

    @property
    def sign(self) -> float:
        """Sign of the first phase. Alternating trains start negative."""
        return 1.0 if self == Polarity.POSITIVE else -1.0


@dataclass(frozen=True)
class Phase:
    """One constant-amplitude segment of a pulse shape."""

    start: float
    """Start of the phase in steps from the beginning of the shape."""

    duration: float
    """Duration of the phase in steps."""

    amplitude: float
    """Normalized amplitude, the sign gives the polarity."""

    pulse_index: int = 0
    """Which pulse of the shape the phase belongs to (0 or 1 for two-pulse)."""

    group: int = 0
    """Charge-balanced unit within the pulse, quadraphasic pulses have two."""

    @property
    def end(self) -> float:
        """End of the phase in steps."""
        return self.start + self.duration

    @property
    def charge(self) -> float:
        """Normalized charge carried by the phase."""
        return self.duration * self.amplitude


@dataclass(frozen=True)
class PulseShape:
    """An elementary pulse (or pulse pair) as ordered, non-overlapping phases."""

    phases: Tuple[Phase, ...]
    topology: Optional[Topology] = None
    length_steps: float = 0.0
    """Minimum length in steps, a shape always extends to its last phase."""

    def __post_init__(self):
        """Check ordering and polarity alternation of the phases."""
        _validate_phases(self.phases)

    @classmethod
    def null(cls, duration_steps: float) -> PulseShape:
        """Create a shape without any phase (e.g. a power-up carrier)."""
        return cls((), None, duration_steps)

    @property
    def duration_steps(self) -> float:
        """Length of the shape, up to the end of its last phase."""
        if not self.phases:
            return self.length_steps
        return max(self.length_steps, self.phases[-1].end)

    @property
    def pulse_indices(self) -> Tuple[int, ...]:
        """Indices of the pulses present in the shape, in ascending order."""
        return tuple(sorted({phase.pulse_index for phase in self.phases}))

    def net_charge(self, pulse_index: Optional[int] = None) -> float:
        """Sum of duration * amplitude over the phases.

        Args:
            pulse_index: Only consider the phases of this pulse.
              Defaults to all phases.
        """
        return math.fsum(
            phase.charge
            for phase in self.phases
            if pulse_index is None or phase.pulse_index == pulse_index
        )

    def breakpoints(self, pulse_index: Optional[int] = None) -> Tuple[ndarray, ndarray]:
        """Return the (time offset, amplitude) breakpoints of the shape.

        Each phase contributes four points so that the trace has vertical
        edges, and the trace starts and ends at zero amplitude.

        Args:
            pulse_index: Only return the phases of this pulse.
              Defaults to all phases.

        Returns:
            Two arrays with the time offsets (in steps) and the amplitudes.
        """
        phases = [
            phase
            for phase in self.phases
            if pulse_index is None or phase.pulse_index == pulse_index
        ]
        if not phases:
            return np.array([0.0, self.duration_steps]), np.zeros(2)
        times = np.array(
            [[phase.start, phase.start, phase.end, phase.end] for phase in phases]
        ).ravel()
        amplitudes = np.array(
            [[0.0, phase.amplitude, phase.amplitude, 0.0] for phase in phases]
        ).ravel()
        return times, amplitudes


def _validate_phases(phases: Tuple[Phase, ...]):
    for phase in phases:
        if phase.duration <= 0:
            raise ValidationError("Phase durations must be positive.")
    for previous, current in zip(phases, phases[1:]):
        if current.start < previous.end:
            raise ValidationError("Phases must be ordered and must not overlap.")
    last_sign = {}
    for phase in phases:
        sign = np.sign(phase.amplitude)
        if sign == 0:
            continue
        key = (phase.pulse_index, phase.group)
        if last_sign.get(key) == sign:
            raise ValidationError(
                "Consecutive phases of the same pulse must have opposite polarity."
            )
        last_sign[key] = sign


def _biphasic(
    start: float,
    phase_steps: float,
    gap_steps: float,
    sign: float,
    ratio: int,
    long_phase_first: bool,
    pulse_index: int = 0,
    group: int = 0,
) -> Tuple[Phase, Phase]:
    """Charge-balanced biphasic pulse, the long phase has `1/ratio` amplitude."""
    long_steps = ratio * phase_steps
    if long_phase_first:
        first = Phase(start, long_steps, sign / ratio, pulse_index, group)
        second_duration, second_amplitude = phase_steps, -sign
    else:
        first = Phase(start, phase_steps, sign, pulse_index, group)
        second_duration, second_amplitude = long_steps, -sign / ratio
    second = Phase(
        first.end + gap_steps, second_duration, second_amplitude, pulse_index, group
    )
    return first, second


def encode(
    phase_steps: float,
    gap_steps: float,
    polarity: Polarity = Polarity.NEGATIVE,
    asymmetry_ratio: int = 1,
    topology: Topology = Topology.BIPHASIC,
    *,
    separation_steps: float = 0.0,
    pulse_gap_steps: float = 0.0,
    second_polarity: Optional[Polarity] = None,
) -> PulseShape:
    """Encode one elementary pulse.

    Args:
        phase_steps: Duration of the (short) phase in steps.
        gap_steps: Interphase gap in steps.
        polarity: Polarity of the first phase.
        asymmetry_ratio: Duration ratio between the long and the short phase
          of a biphasic pulse. Only biphasic and two-pulse shapes accept a
          ratio other than 1.
        topology: Pulse topology.
        separation_steps: Gap between the two biphasic halves of a
          quadraphasic pulse.
        pulse_gap_steps: Gap between the end of the first and the start of
          the second pulse of a two-pulse shape.
        second_polarity: Polarity of the first phase of the second pulse of
          a two-pulse shape. Defaults to `polarity`.

    Returns:
        The pulse shape.

    Raises:
        ValidationError: If the parameters can not produce a valid pulse.
    """
    if phase_steps <= 0:
        raise ValidationError("The phase duration must be at least one step.")
    if gap_steps < 0 or separation_steps < 0 or pulse_gap_steps < 0:
        raise ValidationError("Gaps can not be negative.")
    if asymmetry_ratio not in ASYMMETRY_RATIOS:
        raise ValidationError(
            f"Asymmetry ratio must be one of {ASYMMETRY_RATIOS}, got {asymmetry_ratio}."
        )
    if asymmetry_ratio != 1 and topology not in (
        Topology.BIPHASIC,
        Topology.TWO_PULSE,
    ):
        raise ValidationError(f"{topology.value} pulses can not be asymmetric.")

    sign = polarity.sign
    p, g = phase_steps, gap_steps
    if topology == Topology.BIPHASIC:
        phases = _biphasic(0.0, p, g, sign, asymmetry_ratio, long_phase_first=True)
    elif topology == Topology.TRIPHASIC:
        phases = (
            Phase(0.0, p, sign / 2),
            Phase(p + g, p, -sign),
            Phase(2 * p + 2 * g, p, sign / 2),
        )
    elif topology == Topology.PRECISION_TRIPHASIC:
        half = p / 2
        phases = (
            Phase(0.0, half, sign),
            Phase(half + g, p, -sign),
            Phase(half + p + 2 * g, half, sign),
        )
    elif topology == Topology.QUADRAPHASIC:
        first = _biphasic(0.0, p, g, sign, 1, long_phase_first=False)
        second = _biphasic(
            first[-1].end + separation_steps,
            p,
            g,
            -sign,
            1,
            long_phase_first=False,
            group=1,
        )
        phases = first + second
    elif topology == Topology.TWO_PULSE:
        second_sign = (second_polarity or polarity).sign
        first = _biphasic(0.0, p, g, sign, asymmetry_ratio, long_phase_first=True)
        second = _biphasic(
            first[-1].end + pulse_gap_steps,
            p,
            g,
            second_sign,
            asymmetry_ratio,
            long_phase_first=False,
            pulse_index=1,
        )
        phases = first + second
    else:
        raise ValidationError(f"Unknown topology {topology}.")

    return PulseShape(tuple(phases), topology)
