"""Capability descriptors of the supported stimulation platforms.

Each hardware family is described by data only: its timing grid, its buffer
capacity, its amplitude ranges and which pulse features it supports. The
fitter and the scheduler are parameterized by a descriptor instead of being
specialized per device.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple, Union

from numpy import ndarray
import numpy as np

from pulse_pattern_synthesizer.core.pulse_shapes import ASYMMETRY_RATIOS
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.errors import ConfigurationError


class CurrentLaw(str, Enum):
    """How device units map to microamps."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class PlatformDescriptor:
    """Immutable description of what a stimulation platform can produce."""

    name: str
    step_us: float
    """Time resolution of phases and gaps in microseconds."""

    period_step_us: float
    """Time resolution of pulse periods on platforms without a buffer."""

    buffer_capacity_steps: Optional[int]
    """Number of steps in one periodic hardware buffer, None if not buffered."""

    amplitude_ranges: Tuple[float, ...]
    """Upper limit of each amplitude range, in ascending order."""

    amplitude_steps_per_range: int
    min_inter_pulse_gap_us: float
    """Minimum silence the device inserts after each pulse."""

    n_electrodes: int
    topologies: FrozenSet[Topology]
    asymmetry_ratios: Tuple[int, ...] = (1,)
    min_phase_us: float = 0.0
    max_phase_us: float = 9999.0
    min_interphase_us: float = 0.0
    max_interphase_us: float = 9999.0
    supports_modulation: bool = False
    supports_jitter: bool = False
    supports_alternating_polarity: bool = False
    supports_framing: bool = False
    """Whether pre- and post-stimulus pulses can frame the train."""

    selectable_ranges: int = 1
    """Number of level ranges the user can select, each one scaling the current
    by `range_gain` with respect to the previous one."""

    range_gain: float = 2.0
    amplitude_unit: str = "CU"
    current_law: CurrentLaw = CurrentLaw.LINEAR
    current_scale_ua: float = 1.0
    """Microamps per device unit (linear law) or at level 0 (exponential law)."""

    compliance_limit_unit: float = 255.0
    """Stored for reference, compliance is not computed."""

    def __post_init__(self):
        """Check the descriptor for inconsistent values."""
        if self.step_us <= 0 or self.period_step_us <= 0:
            raise ConfigurationError(f"{self.name}: time steps must be positive.")
        if not self.amplitude_ranges or any(
            np.diff(self.amplitude_ranges) <= 0
        ):
            raise ConfigurationError(
                f"{self.name}: amplitude ranges must be non-empty and ascending."
            )
        if self.buffer_capacity_steps is not None and self.buffer_capacity_steps < 1:
            raise ConfigurationError(f"{self.name}: buffer capacity must be positive.")
        if self.selectable_ranges < 1:
            raise ConfigurationError(
                f"{self.name}: at least one selectable range is required."
            )

    @property
    def is_buffered(self) -> bool:
        """Whether periods are built from a fixed-size repeated buffer."""
        return self.buffer_capacity_steps is not None

    @property
    def max_amplitude(self) -> float:
        """Highest amplitude the platform can deliver."""
        return self.amplitude_ranges[-1]

    def amplitude_range(self, level: float) -> float:
        """Return the upper limit of the smallest range that holds `level`."""
        for upper_limit in self.amplitude_ranges:
            if level <= upper_limit:
                return upper_limit
        return self.amplitude_ranges[-1]

    def amplitude_step(self, upper_limit: float, asymmetry_ratio: int = 1) -> float:
        """Amplitude resolution within a range.

        The long phase of asymmetric pulses is played at `1/ratio` of the
        level, so above a ratio of 4 the usable resolution gets coarser.
        """
        correction_asymmetry = max(1.0, asymmetry_ratio / 4)
        return correction_asymmetry * upper_limit / self.amplitude_steps_per_range

    def to_microamps(
        self, level: Union[float, ndarray], level_range: int = 0
    ) -> Union[float, ndarray]:
        """Convert device units to microamps.

        Args:
            level: Level in device units.
            level_range: Selected level range, see `selectable_ranges`.
        """
        level = np.asarray(level, dtype=float)
        if self.current_law == CurrentLaw.EXPONENTIAL:
            current = self.current_scale_ua * 100 ** (level / self.max_amplitude)
        else:
            current = level * self.current_scale_ua
        return current * self.range_gain**level_range

    def level_dbua(
        self, level: Union[float, ndarray], level_range: int = 0
    ) -> Union[float, ndarray]:
        """Convert device units to dB re 1 uA."""
        return 20 * np.log10(self.to_microamps(level, level_range))


ADVANCED_BIONICS_BEDCS = PlatformDescriptor(
    name="advanced_bionics_bedcs",
    step_us=10.776,
    period_step_us=10.776,
    buffer_capacity_steps=256,
    amplitude_ranges=(255.0, 510.0, 1020.0, 2040.0),
    amplitude_steps_per_range=255,
    min_inter_pulse_gap_us=0.0,
    n_electrodes=16,
    topologies=frozenset({Topology.BIPHASIC, Topology.TWO_PULSE}),
    asymmetry_ratios=ASYMMETRY_RATIOS,
    min_phase_us=10.776,
    amplitude_unit="uA",
)

COCHLEAR_NIC4 = PlatformDescriptor(
    name="cochlear_nic4",
    step_us=0.2,
    period_step_us=1.0,
    buffer_capacity_steps=None,
    amplitude_ranges=(255.0,),
    amplitude_steps_per_range=255,
    min_inter_pulse_gap_us=7.8,
    n_electrodes=22,
    topologies=frozenset({Topology.BIPHASIC, Topology.QUADRAPHASIC}),
    min_phase_us=20.0,
    max_phase_us=429.4,
    min_interphase_us=5.6,
    max_interphase_us=56.6,
    supports_modulation=True,
    current_law=CurrentLaw.EXPONENTIAL,
    current_scale_ua=17.5,
)

COCHLEAR_NIC3 = PlatformDescriptor(
    name="cochlear_nic3",
    step_us=0.2,
    period_step_us=1.0,
    buffer_capacity_steps=None,
    amplitude_ranges=(255.0,),
    amplitude_steps_per_range=255,
    min_inter_pulse_gap_us=6.4,
    n_electrodes=22,
    topologies=frozenset({Topology.BIPHASIC}),
    min_phase_us=20.0,
    max_phase_us=429.4,
    min_interphase_us=5.6,
    max_interphase_us=56.6,
    supports_modulation=True,
    supports_framing=True,
    current_law=CurrentLaw.EXPONENTIAL,
    current_scale_ua=17.5,
)

MEDEL_RIB2 = PlatformDescriptor(
    name="medel_rib2",
    step_us=1.0,
    period_step_us=1.0,
    buffer_capacity_steps=None,
    amplitude_ranges=(127.0,),
    amplitude_steps_per_range=127,
    min_inter_pulse_gap_us=0.0,
    n_electrodes=12,
    topologies=frozenset(
        {Topology.BIPHASIC, Topology.TRIPHASIC, Topology.PRECISION_TRIPHASIC}
    ),
    min_phase_us=1.0,
    supports_jitter=True,
    supports_alternating_polarity=True,
    selectable_ranges=4,
    current_scale_ua=150 / 127,
    compliance_limit_unit=127.0,
)

PLATFORMS: Dict[str, PlatformDescriptor] = {
    platform.name: platform
    for platform in (ADVANCED_BIONICS_BEDCS, COCHLEAR_NIC4, COCHLEAR_NIC3, MEDEL_RIB2)
}


def get_platform(name: str) -> PlatformDescriptor:
    """Get a platform descriptor by name.

    Raises:
        ConfigurationError: If no platform has that name.
    """
    try:
        return PLATFORMS[name]
    except KeyError as error:
        raise ConfigurationError(
            f"Unknown platform '{name}', expected one of {sorted(PLATFORMS)}."
        ) from error
