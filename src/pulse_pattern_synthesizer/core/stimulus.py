"""User-facing stimulation parameters."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from numpy import ndarray
import numpy as np
from scipy.interpolate import interp1d

from pulse_pattern_synthesizer.core.pulse_shapes import ASYMMETRY_RATIOS
from pulse_pattern_synthesizer.core.pulse_shapes import Polarity
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.errors import ValidationError


class TriggerMode(str, Enum):
    """Which pulses are accompanied by a trigger."""

    ALL = "all"
    FIRST = "first"
    NONE = "none"


@dataclass(frozen=True, eq=False)
class Modulator:
    """Amplitude weights applied to the pulses of a train.

    The weight of a pulse is the weight of the modulator point nearest to the
    pulse start time. Pulses outside of the modulator time span are silent.
    """

    t_s: ndarray
    """Strictly increasing times in seconds."""

    weights: ndarray
    """Weights between 0 and 1, one per time."""

    def __post_init__(self):
        """Validate the modulator curve."""
        t_s = np.asarray(self.t_s, dtype=float)
        weights = np.asarray(self.weights, dtype=float)
        if t_s.ndim != 1 or t_s.shape != weights.shape:
            raise ValidationError(
                "The modulator needs one weight per time point, as 1D arrays."
            )
        if len(t_s) < 2:
            raise ValidationError("The modulator needs at least two points.")
        if not np.all(np.isfinite(t_s)) or np.any(np.diff(t_s) <= 0):
            raise ValidationError(
                "The modulator time axis must be strictly increasing."
            )
        if np.any(weights < 0) or np.any(weights > 1) or np.any(np.isnan(weights)):
            raise ValidationError("The modulator weights must be between 0 and 1.")
        t_s.setflags(write=False)
        weights.setflags(write=False)
        object.__setattr__(self, "t_s", t_s)
        object.__setattr__(self, "weights", weights)

    @classmethod
    def from_points(cls, points: Sequence[Tuple[float, float]]) -> Modulator:
        """Create a modulator from `(time, weight)` pairs."""
        array = np.asarray(points, dtype=float)
        if array.ndim != 2 or array.shape[1] != 2:
            raise ValidationError(
                "The modulator must be a list of (time, weight) pairs."
            )
        return cls(array[:, 0], array[:, 1])

    def sample(self, times_s: ndarray) -> ndarray:
        """Weights at the given times, using nearest-neighbour interpolation."""
        interpolator = interp1d(
            self.t_s,
            self.weights,
            kind="nearest",
            bounds_error=False,
            fill_value=0.0,
            assume_sorted=True,
        )
        return np.asarray(interpolator(times_s), dtype=float)

    def __eq__(self, o: object) -> bool:
        """Compare the curves of two modulators."""
        if not isinstance(o, Modulator):
            return False
        return np.array_equal(self.t_s, o.t_s) and np.array_equal(
            self.weights, o.weights
        )

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class Framing:
    """Pulses played before and after the train so that it is played properly.

    The same block of pulses is played as pre-stimulus and as post-stimulus,
    on the first electrode of the train and with its interphase gap.
    """

    rate_pps: float = 5000.0
    level: float = 20.0
    phase_dur_us: float = 25.0
    duration_s: float = 0.075
    """Duration of each of the pre- and post-stimulus blocks."""

    def __post_init__(self):
        """Check the parameter ranges."""
        if not self.rate_pps > 0:
            raise ValidationError("The pre-stimulus rate must be positive.")
        if self.level < 0:
            raise ValidationError("The pre-stimulus level can not be negative.")
        if not self.phase_dur_us > 0:
            raise ValidationError("The pre-stimulus phase duration must be positive.")
        if not self.duration_s > 0:
            raise ValidationError("The pre-stimulus duration must be positive.")


def _as_tuple(value) -> tuple:
    if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, ndarray)):
        return (value,)
    return tuple(value)


def _broadcast(name: str, values: tuple, n_pulses: int) -> tuple:
    if len(values) == n_pulses:
        return values
    if len(values) == 1:
        return values * n_pulses
    raise ValidationError(
        f"{name} must have {n_pulses} value(s) for this topology, got {len(values)}."
    )


@dataclass(frozen=True)
class StimulationRequest:
    """Stimulation parameters as requested by the user.

    Scalars are accepted wherever a value per pulse is expected and are
    repeated for every pulse of the topology (two for two-pulse trains).
    Requests are immutable, use :func:`dataclasses.replace` to change a value.
    """

    phase_dur_us: float = 43.0
    """Duration of the short phase in microseconds."""

    interphase_dur_us: float = 8.0
    """Interphase gap in microseconds."""

    electrodes: Union[int, Tuple[int, ...]] = (11,)
    """Electrode id of each pulse of the topology."""

    rate_pps: float = 442.0
    levels: Union[float, Tuple[float, ...]] = (100.0,)
    """Level of each pulse in device units (or uA, depending on the platform)."""

    max_levels: Union[float, Tuple[float, ...]] = (255.0,)
    """User-defined maximum level of each pulse."""

    duration_s: float = 0.4
    polarity: Union[Polarity, Tuple[Polarity, ...]] = (Polarity.NEGATIVE,)
    """Polarity of the first phase of each pulse of the topology."""

    topology: Topology = Topology.BIPHASIC
    asymmetry_ratio: int = 1
    pulse_gap_us: Optional[float] = None
    """Gap between the two pulses of a two-pulse train."""

    jitter_window_us: float = 0.0
    """Width of the window the pulse periods are jittered in. 0 disables it."""

    modulator: Optional[Modulator] = None
    trigger: TriggerMode = TriggerMode.NONE
    trigger_dur_us: float = 10.0
    """Duration of each trigger in microseconds."""

    level_range: int = 0
    """Selected level range, on platforms with several selectable ranges."""

    range_max_levels: Optional[Tuple[float, ...]] = None
    """User-defined maximum level of each selectable range."""

    framing: Optional[Framing] = None
    """Pre- and post-stimulus pulses played around the train."""

    def __post_init__(self):
        """Normalize the per-pulse values and check the parameter ranges."""
        topology = Topology(self.topology)
        n_pulses = topology.n_pulses
        normalized = {
            "topology": topology,
            "trigger": TriggerMode(self.trigger),
            "electrodes": tuple(
                int(e)
                for e in _broadcast("electrodes", _as_tuple(self.electrodes), n_pulses)
            ),
            "levels": tuple(
                float(v) for v in _broadcast("levels", _as_tuple(self.levels), n_pulses)
            ),
            "max_levels": tuple(
                float(v)
                for v in _broadcast("max_levels", _as_tuple(self.max_levels), n_pulses)
            ),
            "polarity": tuple(
                Polarity(p)
                for p in _broadcast("polarity", _as_tuple(self.polarity), n_pulses)
            ),
        }
        if self.range_max_levels is not None:
            normalized["range_max_levels"] = tuple(
                float(v) for v in _as_tuple(self.range_max_levels)
            )
        for name, value in normalized.items():
            object.__setattr__(self, name, value)
        self._check_ranges()

    def _check_ranges(self):
        if not self.phase_dur_us > 0:
            raise ValidationError("The phase duration must be positive.")
        if self.interphase_dur_us < 0:
            raise ValidationError("The interphase gap can not be negative.")
        if not self.rate_pps > 0:
            raise ValidationError("The rate must be positive.")
        if not self.duration_s > 0:
            raise ValidationError("The duration must be positive.")
        if self.trigger_dur_us < 0 or self.trigger_dur_us >= 55e6:
            raise ValidationError("The trigger duration must be in [0, 55 s).")
        if self.level_range < 0:
            raise ValidationError("The level range can not be negative.")
        if self.jitter_window_us < 0:
            raise ValidationError("The jitter window can not be negative.")
        if any(level < 0 for level in self.levels):
            raise ValidationError("Levels can not be negative.")
        if self.asymmetry_ratio not in ASYMMETRY_RATIOS:
            raise ValidationError(
                f"Asymmetry ratio must be one of {ASYMMETRY_RATIOS}, "
                f"got {self.asymmetry_ratio}."
            )
        if self.topology == Topology.TWO_PULSE:
            if self.pulse_gap_us is None or self.pulse_gap_us < 0:
                raise ValidationError("Two-pulse trains need a non-negative pulse gap.")
        elif self.pulse_gap_us is not None:
            raise ValidationError("A pulse gap only applies to two-pulse trains.")

    @property
    def n_pulses(self) -> int:
        """Number of pulses in one period of the train."""
        return self.topology.n_pulses

    @property
    def alternating(self) -> bool:
        """Whether the polarity alternates from one pulse to the next."""
        return Polarity.ALTERNATING in self.polarity
