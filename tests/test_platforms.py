"""Tests for platforms.py module."""
import math

import pytest

from pulse_pattern_synthesizer.core import platforms
from pulse_pattern_synthesizer.core.platforms import ADVANCED_BIONICS_BEDCS
from pulse_pattern_synthesizer.core.platforms import COCHLEAR_NIC4
from pulse_pattern_synthesizer.core.platforms import MEDEL_RIB2
from pulse_pattern_synthesizer.core.platforms import PlatformDescriptor
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.errors import ConfigurationError


class TestPlatformDescriptor:
    """Tests for the PlatformDescriptor class."""

    @pytest.mark.parametrize(
        "level, expected_range",
        [(0, 255), (255, 255), (256, 510), (1000, 1020), (2040, 2040)],
    )
    def test_amplitude_range(self, level, expected_range):
        """Test the smallest range holding the level is selected."""
        assert ADVANCED_BIONICS_BEDCS.amplitude_range(level) == expected_range

    @pytest.mark.parametrize(
        "ratio, expected_step", [(1, 2.0), (4, 2.0), (8, 4.0), (32, 16.0)]
    )
    def test_amplitude_step(self, ratio, expected_step):
        """Test the resolution gets coarser for strongly asymmetric pulses."""
        assert ADVANCED_BIONICS_BEDCS.amplitude_step(510, ratio) == expected_step

    def test_level_dbua_linear(self):
        """Test levels in microamps are converted directly."""
        assert ADVANCED_BIONICS_BEDCS.level_dbua(100) == pytest.approx(40.0)
        assert MEDEL_RIB2.level_dbua(127) == pytest.approx(20 * math.log10(150))

    def test_level_dbua_exponential(self):
        """Test current levels follow the exponential law."""
        expected = 20 * math.log10(17.5) + 40 * 100 / 255
        assert COCHLEAR_NIC4.level_dbua(100) == pytest.approx(expected)

    @pytest.mark.parametrize("level_range", [0, 1, 2, 3])
    def test_level_dbua_with_level_range(self, level_range):
        """Test every selectable range doubles the current of the previous one."""
        expected = 150 / 127 * 100 * 2**level_range
        assert MEDEL_RIB2.to_microamps(100, level_range) == pytest.approx(expected)
        assert MEDEL_RIB2.level_dbua(100, level_range) == pytest.approx(
            20 * math.log10(expected)
        )

    def test_selectable_ranges(self):
        """Test only the MED-EL platform has several level ranges."""
        assert MEDEL_RIB2.selectable_ranges == 4
        assert COCHLEAR_NIC4.selectable_ranges == 1

    def test_is_buffered(self):
        """Test only platforms with a buffer capacity are buffered."""
        assert ADVANCED_BIONICS_BEDCS.is_buffered
        assert not COCHLEAR_NIC4.is_buffered

    def test_invalid_descriptor(self):
        """Test descriptors with unusable values are rejected."""
        with pytest.raises(ConfigurationError):
            PlatformDescriptor(
                name="broken",
                step_us=0.0,
                period_step_us=1.0,
                buffer_capacity_steps=None,
                amplitude_ranges=(255.0,),
                amplitude_steps_per_range=255,
                min_inter_pulse_gap_us=0.0,
                n_electrodes=1,
                topologies=frozenset({Topology.BIPHASIC}),
            )


class TestGetPlatform:
    """Tests for the get_platform function."""

    def test_known_platform(self):
        """Test presets can be looked up by name."""
        assert platforms.get_platform("medel_rib2") is MEDEL_RIB2

    def test_unknown_platform(self):
        """Test unknown names are configuration errors."""
        with pytest.raises(ConfigurationError):
            platforms.get_platform("unknown")
