"""Test for post_install_config.py."""
import argparse
import os

import pytest

from pulse_pattern_synthesizer.scripts import post_install_config
from pulse_pattern_synthesizer.util import runtime


@pytest.fixture(autouse=True)
def fake_parse_args(monkeypatch: pytest.MonkeyPatch) -> argparse.Namespace:
    """Fake command line arguments passed to the script."""
    parse_args_result = argparse.Namespace(overwrite_existing_files=False)

    def parse_args(self, args=None, namespace=None):
        return parse_args_result

    monkeypatch.setattr("argparse.ArgumentParser.parse_args", parse_args)
    return parse_args_result


@pytest.fixture(autouse=True)
def tmp_pps_home(monkeypatch: pytest.MonkeyPatch, tmp_path) -> str:
    """Set the PPS_HOME constant to a temporary path."""
    tmp_pps_home = os.path.join(tmp_path, "pps")
    monkeypatch.setattr(runtime, "PPS_HOME", tmp_pps_home)
    return tmp_pps_home


class TestPostInstallConfig:
    """Test the post install script."""

    def test_settings_are_copied(self, tmp_pps_home):
        """Test the default settings file is copied to PPS_HOME."""
        post_install_config.run()
        assert os.path.exists(os.path.join(tmp_pps_home, "settings.yaml"))

    def test_existing_files_are_kept(self, tmp_pps_home, capsys):
        """Test existing config files are not overwritten by default."""
        os.makedirs(tmp_pps_home)
        settings_file = os.path.join(tmp_pps_home, "settings.yaml")
        with open(settings_file, "w") as f:
            f.write("custom")
        post_install_config.run()
        with open(settings_file) as f:
            assert f.read() == "custom"
        assert "Skipped 'settings.yaml'" in capsys.readouterr().out

    def test_existing_files_are_overwritten(self, tmp_pps_home, fake_parse_args):
        """Test existing config files are replaced when requested."""
        fake_parse_args.overwrite_existing_files = True
        os.makedirs(tmp_pps_home)
        settings_file = os.path.join(tmp_pps_home, "settings.yaml")
        with open(settings_file, "w") as f:
            f.write("custom")
        post_install_config.run()
        with open(settings_file) as f:
            assert f.read() != "custom"
