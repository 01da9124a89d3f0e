"""Script to bootstrap the pulse pattern synthesizer environment.

This script needs to be run by the user after installing the package.
It will create the PPS_HOME directory in `$HOME/.pps` then copy the default
configuration file to it.
"""
import argparse
import os
import shutil

import pulse_pattern_synthesizer
from pulse_pattern_synthesizer.util.runtime import get_abs_path
from pulse_pattern_synthesizer.util.runtime import get_configs_dir

core_configs = [
    ("settings.yaml", pulse_pattern_synthesizer.__file__),
]


def _copy_files(
    file_list: list, parent_dir: str, destination_dir: str, overwrite: bool
):
    os.makedirs(destination_dir, exist_ok=True)
    for file_name, file_parent in file_list:
        config_file_path = os.path.join(destination_dir, file_name)
        if not os.path.exists(config_file_path) or overwrite:
            shutil.copy(
                get_abs_path(os.path.join(parent_dir, file_name), file_parent),
                destination_dir,
            )
            print(f"Copied '{file_name}' to {destination_dir}")
        else:
            print(
                f"Skipped '{file_name}' because it"
                f" already exists in {destination_dir}"
            )


def run():
    """Copy the default config files to PPS_HOME."""
    parser = argparse.ArgumentParser(description="Run post install steps.")
    parser.add_argument(
        "--overwrite-existing-files",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Replace existing config files if they exist.",
    )
    args = parser.parse_args()

    _copy_files(
        core_configs, "config", get_configs_dir(), args.overwrite_existing_files
    )


if __name__ == "__main__":
    run()
