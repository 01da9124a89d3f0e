from typing import Dict

from pulse_pattern_synthesizer.errors import SettingsMigrationError


def apply_migration(data: Dict) -> Dict:
    """Add the trigger duration, level range and framing settings.

    Args:
        data: The settings data.

    Returns:
        The migrated settings data.

    Raises:
        SettingsMigrationError: If the data is not version 1.0.0 settings.
    """
    if data.get("version") != "1.0.0":
        raise SettingsMigrationError(
            f"Can not migrate settings version {data.get('version')} to 1.1.0."
        )
    stimulus = data.get("stimulus")
    if not isinstance(stimulus, dict):
        raise SettingsMigrationError("The settings have no stimulus section.")

    stimulus.setdefault("trigger_dur_us", 10.0)
    stimulus.setdefault("level_range", 0)
    stimulus.setdefault("range_max_levels", None)
    stimulus.setdefault("framing", None)

    data["version"] = "1.1.0"
    return data
