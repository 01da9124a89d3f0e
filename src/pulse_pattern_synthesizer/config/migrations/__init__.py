"""Migrations for the settings files."""
from pulse_pattern_synthesizer.config.migrations import _v100_to_110

MIGRATIONS = {
    "settings.yaml": {
        "1.0.0": _v100_to_110,
    }
}
