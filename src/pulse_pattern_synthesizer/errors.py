"""Pulse train errors."""


class PulseTrainError(Exception):
    """Base class for all errors raised while deriving a pulse train."""

    pass


class ValidationError(PulseTrainError, ValueError):
    """Stimulation parameters are invalid for the selected platform."""

    pass


class AchievabilityError(PulseTrainError):
    """The requested timing does not fit in the platform's timing budget."""

    def __init__(self, rate_pps: float, max_rate_pps: float, reason: str = ""):
        """Initialize the exception.

        Args:
            rate_pps: The requested (or jittered) pulse rate.
            max_rate_pps: The highest rate achievable with the current pulse shape.
            reason: Optional detail appended to the message.
        """
        self.rate_pps = rate_pps
        self.max_rate_pps = max_rate_pps
        self.message = (
            f"{rate_pps:g} pps can not be achieved, the maximum rate for this "
            f"pulse shape is {max_rate_pps:g} pps."
        )
        if reason:
            self.message = f"{self.message} {reason}"
        super().__init__(self.message)


class BufferOverflowError(PulseTrainError):
    """Phases and gaps do not fit in one hardware buffer."""

    def __init__(self, required_steps: int, capacity_steps: int):
        """Initialize the exception.

        Args:
            required_steps: Number of steps needed by the pulse.
            capacity_steps: Number of steps available in one buffer.
        """
        self.required_steps = required_steps
        self.capacity_steps = capacity_steps
        self.message = (
            f"Phase and interphase durations are too long to fit in one buffer "
            f"({required_steps} steps required, {capacity_steps} available)."
        )
        super().__init__(self.message)


class ConfigurationError(PulseTrainError):
    """A platform descriptor or a settings file can not be used."""

    pass


class SettingsMigrationError(ConfigurationError):
    """Cannot migrate settings."""

    pass


class UnexpectedSettingsVersion(ConfigurationError):
    """Loaded settings version is different than the expected version."""

    def __init__(self, current_version, expected_version):
        """Initialize the exception.

        Args:
            current_version: The loaded settings version.
            expected_version: The expected settings version.
        """
        self.current_version = current_version
        self.expected_version = expected_version
        self.message = (
            f"Loaded settings version {current_version} is "
            f"different than the expected version {expected_version}."
        )
        super().__init__(self.message)
