r"""Script that synthesizes a pulse train and sends it to an output.

The default configuration is located in `PPS_HOME/settings.yaml`
(see :mod:`pulse_pattern_synthesizer.scripts.post_install_config`). The script
can use a different config file specified via the `\--settings-path` argument.

The config file selects the target platform, the stimulus parameters and where
the device-ready sequence is written: to the console or to a text file.
"""
import argparse
import logging
from pathlib import Path
from typing import cast

import numpy as np
from rich.pretty import pprint
import yaml

from pulse_pattern_synthesizer.config.migrations import MIGRATIONS
from pulse_pattern_synthesizer.core import fitter
from pulse_pattern_synthesizer.core.outputs import api as outputs
from pulse_pattern_synthesizer.core.platforms import get_platform
from pulse_pattern_synthesizer.core.pulse_train import PulseTrain
from pulse_pattern_synthesizer.core.settings import OutputSettings
from pulse_pattern_synthesizer.core.settings import OutputType
from pulse_pattern_synthesizer.core.settings import SETTINGS_VERSION
from pulse_pattern_synthesizer.core.settings import Settings
from pulse_pattern_synthesizer.core.settings import StimulusSettings
from pulse_pattern_synthesizer.core.stimulus import Framing
from pulse_pattern_synthesizer.core.stimulus import Modulator
from pulse_pattern_synthesizer.core.stimulus import StimulationRequest
from pulse_pattern_synthesizer.util.runtime import configure_logger
from pulse_pattern_synthesizer.util.runtime import get_abs_path
from pulse_pattern_synthesizer.util.runtime import get_configs_dir
from pulse_pattern_synthesizer.util.runtime import initialize_logger
from pulse_pattern_synthesizer.util.runtime import open_connection
from pulse_pattern_synthesizer.util.runtime import unwrap
from pulse_pattern_synthesizer.util.settings_loader import check_config_override_str
from pulse_pattern_synthesizer.util.settings_loader import load_settings

SCRIPT_NAME = "pps-pulse-train"
logger = logging.getLogger(__name__)


def _setup_request(stimulus: StimulusSettings) -> StimulationRequest:
    """Create the stimulation request from the stimulus settings."""
    modulator = None
    if stimulus.modulator is not None:
        modulator = Modulator.from_points(stimulus.modulator)
    framing = None
    if stimulus.framing is not None:
        framing = Framing(**stimulus.framing.model_dump())
    return StimulationRequest(
        phase_dur_us=stimulus.phase_dur_us,
        interphase_dur_us=stimulus.interphase_dur_us,
        electrodes=tuple(stimulus.electrodes),
        rate_pps=stimulus.rate_pps,
        levels=tuple(stimulus.levels),
        max_levels=tuple(stimulus.max_levels),
        duration_s=stimulus.duration_s,
        polarity=tuple(stimulus.polarity),
        topology=stimulus.topology,
        asymmetry_ratio=stimulus.asymmetry_ratio,
        pulse_gap_us=stimulus.pulse_gap_us,
        jitter_window_us=stimulus.jitter_window_us,
        modulator=modulator,
        trigger=stimulus.trigger,
        trigger_dur_us=stimulus.trigger_dur_us,
        level_range=stimulus.level_range,
        range_max_levels=(
            tuple(stimulus.range_max_levels)
            if stimulus.range_max_levels is not None
            else None
        ),
        framing=framing,
    )


def _setup_output(output_settings: OutputSettings) -> outputs.SequenceSink:
    """Set up the sink the sequences are sent to.

    Args:
        output_settings: Output settings.

    Returns:
        The sequence sink.
    """
    if output_settings.type == OutputType.CONSOLE:
        return outputs.ConsoleSink()
    if output_settings.type == OutputType.FILE:
        return outputs.FileSink(
            file_name=get_abs_path(unwrap(output_settings.file)),
            keep_file=output_settings.keep_file,
        )
    raise ValueError(f"Unexpected output type {output_settings.type}")


def _parse_args():
    parser = argparse.ArgumentParser(
        description="Synthesize a pulse train for a stimulation platform.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--settings-path",
        type=Path,
        default=Path(get_configs_dir()).joinpath("settings.yaml"),
        help="Path to the settings.yaml file.",
    )
    parser.add_argument(
        "--overrides",
        "-o",
        nargs="*",
        type=check_config_override_str,
        help=(
            "Specify settings overrides as key-value pairs, separated by spaces. "
            "For example: -o log_level=DEBUG stimulus.rate_pps=900"
        ),
    )
    parser.add_argument(
        "--print-settings-only",
        "-p",
        action="store_true",
        help="Parse/print the settings and exit.",
    )
    args = parser.parse_args()
    return args


def run():
    """Load the configuration, synthesize the pulse train and output it."""
    initialize_logger(SCRIPT_NAME)
    args = _parse_args()
    settings: Settings = cast(
        Settings,
        load_settings(
            args.settings_path,
            settings_parser=Settings,
            override_dotlist=args.overrides,
            expected_version=SETTINGS_VERSION,
            migrations=MIGRATIONS["settings.yaml"],
        ),
    )
    if args.print_settings_only:
        pprint(settings)
        return

    configure_logger(SCRIPT_NAME, settings.log_level)
    settings_dump = yaml.dump(settings.model_dump(mode="json"))
    logger.debug(f"run_pulse_train settings:\n{settings_dump}")

    platform = get_platform(settings.platform)
    rng = np.random.default_rng(settings.random_seed)
    train = PulseTrain.create(_setup_request(settings.stimulus), platform, rng)
    logger.info(f"Pulse train parameters:\n{yaml.dump(train.struct())}")

    sink = _setup_output(settings.output)
    with open_connection(sink):
        if settings.stimulus.power_up_s > 0:
            power_up = fitter.fit_power_up(settings.stimulus.power_up_s)
            sink.send(power_up.to_sequence())
        sink.send(train.sequence)


if __name__ == "__main__":
    run()
