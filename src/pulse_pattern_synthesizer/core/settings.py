"""Models for parsing and validating the contents of `settings.yaml`."""
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator
from pydantic import model_validator

from pulse_pattern_synthesizer.core.platforms import PLATFORMS
from pulse_pattern_synthesizer.core.pulse_shapes import Polarity
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.core.stimulus import TriggerMode

SETTINGS_VERSION = "1.1.0"
"""Version of `settings.yaml` that :class:`Settings` parses."""


class LogLevel(str, Enum):
    """Possible log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    ERROR = "ERROR"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class OutputType(str, Enum):
    """Possible types of sequence output."""

    CONSOLE = "console"
    FILE = "file"


class FramingSettings(BaseModel):
    """Settings for the pre- and post-stimulus pulses."""

    model_config = ConfigDict(extra="forbid")

    rate_pps: float = 5000.0
    level: float = 20.0
    phase_dur_us: float = 25.0
    duration_s: float = 0.075


class StimulusSettings(BaseModel):
    """Settings for the requested stimulus."""

    model_config = ConfigDict(extra="forbid")

    phase_dur_us: float
    interphase_dur_us: float
    electrodes: List[int]
    rate_pps: float
    levels: List[float]
    max_levels: List[float]
    duration_s: float
    polarity: List[Polarity]
    topology: Topology = Topology.BIPHASIC
    asymmetry_ratio: int = 1
    pulse_gap_us: Optional[float] = None
    jitter_window_us: float = 0.0
    modulator: Optional[List[Tuple[float, float]]] = None
    trigger: TriggerMode = TriggerMode.NONE
    trigger_dur_us: float = 10.0
    level_range: int = 0
    range_max_levels: Optional[List[float]] = None
    """Highest level of each selectable level range."""

    framing: Optional[FramingSettings] = None
    """Pre- and post-stimulus pulses, only on platforms that support them."""

    power_up_s: float = 0.0
    """Null pulses played before the train, 0 disables the power-up."""

    @field_validator("electrodes", "levels", "max_levels", "polarity")
    @classmethod
    def _must_not_be_empty(cls, v):
        if not v:
            raise ValueError("At least one value is required")
        return v

    @field_validator("power_up_s")
    @classmethod
    def _power_up_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("The power-up duration can not be negative")
        return v


class OutputSettings(BaseModel):
    """Settings for the sequence output."""

    model_config = ConfigDict(extra="forbid")

    type: OutputType
    file: Optional[str] = None
    keep_file: bool = True

    @model_validator(mode="after")
    def _file_type_must_have_a_file_name(self):
        if self.type == OutputType.FILE and not self.file:
            raise ValueError("File type must have a file name")
        return self


class Settings(BaseModel):
    """All settings for the pulse pattern synthesizer."""

    model_config = ConfigDict(extra="forbid")

    version: str
    log_level: LogLevel
    platform: str
    random_seed: Optional[int] = None
    stimulus: StimulusSettings
    output: OutputSettings

    @field_validator("version")
    @classmethod
    def _version_must_be_current(cls, v):
        if v != SETTINGS_VERSION:
            raise ValueError(f"Expected settings version {SETTINGS_VERSION}")
        return v

    @field_validator("platform")
    @classmethod
    def _platform_must_be_known(cls, v):
        if v not in PLATFORMS:
            raise ValueError(f"Unknown platform, expected one of {sorted(PLATFORMS)}")
        return v
