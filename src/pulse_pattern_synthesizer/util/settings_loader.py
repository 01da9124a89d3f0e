"""Parse settings from files."""
import argparse
import logging
import os
from types import ModuleType
from typing import Dict, List, Optional, Type

from omegaconf import OmegaConf
import pydantic
from pydantic import BaseModel
import yaml

from pulse_pattern_synthesizer.errors import UnexpectedSettingsVersion
from pulse_pattern_synthesizer.util.runtime import get_configs_dir

logger = logging.getLogger(__name__)


def load_settings(
    settings_file: os.PathLike,
    settings_parser: Type[BaseModel],
    override_dotlist: Optional[List[str]] = None,
    expected_version: Optional[str] = None,
    migrations: Optional[Dict[str, ModuleType]] = None,
):
    """Load settings from a YAML file and parse them into a Pydantic model.

    Args:
        settings_file: Path to the YAML file containing the settings.
        settings_parser: Pydantic model to parse the settings into.
        override_dotlist: Optional list of dot-separated key-value pairs to override
            the settings loaded from the file.
        expected_version: Settings version the parser expects. When set, older
            settings are migrated before they are parsed.
        migrations: Migration modules keyed by the version they migrate from.

    Returns:
        An instance of the `settings_parser` model containing the parsed settings.

    Raises:
        FileNotFoundError: If the `settings_file` is not found.
        UnexpectedSettingsVersion: If the settings version is not the expected
            one and no migration leads to it.
        pydantic.ValidationError: If the settings file/overrides do not
            match the schema
    """
    try:
        with open(settings_file, "r") as f:
            settings_dict = yaml.safe_load(f)
    except FileNotFoundError as file_error:
        raise FileNotFoundError(
            f"Settings file not found: {settings_file}.\n"
            "\tRun 'pps_post_install_config' to copy the default settings file\n"
            f"\tto: {get_configs_dir()}\n"
            "\tAlternatively, you can specify the path to the settings file via the\n"
            "\t'--settings-path' argument."
        ) from file_error

    if expected_version is not None and isinstance(settings_dict, dict):
        settings_dict = _migrate(settings_dict, expected_version, migrations or {})

    try:
        settings = settings_parser.model_validate(settings_dict)
    except pydantic.ValidationError:
        logger.error("Settings file does not match expected schema.")
        raise

    if override_dotlist:
        override_conf = OmegaConf.from_dotlist(override_dotlist)
        merged_conf = OmegaConf.merge(settings_dict, override_conf)
        settings_dict = OmegaConf.to_object(merged_conf)
        try:
            settings = settings_parser.model_validate(settings_dict)
        except pydantic.ValidationError:
            logger.error("Overrides list does not match expected schema.")
            raise

    return settings


def _migrate(
    settings_dict: Dict, expected_version: str, migrations: Dict[str, ModuleType]
) -> Dict:
    """Apply migrations one version at a time until the expected one."""
    version = str(settings_dict.get("version"))
    while version != expected_version:
        migration = migrations.get(version)
        if migration is None:
            logger.warning(
                "Run 'pps_post_install_config --overwrite-existing-files' to get "
                "the default settings of the installed version."
            )
            raise UnexpectedSettingsVersion(version, expected_version)
        settings_dict = migration.apply_migration(settings_dict)
        migrated_version = str(settings_dict["version"])
        logger.info(f"Migrated settings from version {version} to {migrated_version}")
        version = migrated_version
    return settings_dict


def check_config_override_str(value: str) -> str:
    """Custom argparse type to check for individual dot-list arguments.

    Args:
        value (str): The value to check.

    Raises:
        argparse.ArgumentTypeError: If the key or subkeys are empty
            Note: this is a pre-checker for OmegaConf.from_dotlist,
            which actually handles a wide variety of str formats.

    Returns:
        str: The value if it is in the expected format.
    """
    key = value.split("=")[0]
    key_parts = key.split(".")
    if (not key_parts) or ("" in key_parts):
        raise argparse.ArgumentTypeError(
            f"Invalid config-override: {value}\n"
            "\tExpected format: `key=value` or `key.subkey=value`"
        )
    return value
