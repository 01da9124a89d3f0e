"""Tests for stimulus.py module."""
import dataclasses

import numpy as np
import pytest

from pulse_pattern_synthesizer.core.pulse_shapes import Polarity
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.core.stimulus import Framing
from pulse_pattern_synthesizer.core.stimulus import Modulator
from pulse_pattern_synthesizer.core.stimulus import StimulationRequest
from pulse_pattern_synthesizer.core.stimulus import TriggerMode
from pulse_pattern_synthesizer.errors import ValidationError


@pytest.fixture
def modulator() -> Modulator:
    """Create a modulator that ramps up and down over 0.4 s."""
    return Modulator.from_points([(0.0, 0.0), (0.2, 1.0), (0.4, 0.0)])


class TestModulator:
    """Tests for the Modulator class."""

    def test_nearest_neighbour_sampling(self, modulator):
        """Test weights come from the nearest modulator point."""
        np.testing.assert_array_equal(
            modulator.sample(np.array([0.0, 0.09, 0.12, 0.2, 0.39])),
            [0.0, 0.0, 1.0, 1.0, 0.0],
        )

    def test_outside_of_support_is_silent(self, modulator):
        """Test times outside of the modulator span get a zero weight."""
        np.testing.assert_array_equal(modulator.sample(np.array([-0.1, 0.45])), [0, 0])

    def test_arrays_are_read_only(self, modulator):
        """Test the modulator curve can not be changed in place."""
        with pytest.raises(ValueError):
            modulator.weights[0] = 1.0

    def test_equality(self, modulator):
        """Test modulators with the same curve are equal."""
        assert modulator == Modulator(np.array([0.0, 0.2, 0.4]), np.array([0, 1, 0]))
        assert modulator != Modulator(np.array([0.0, 0.2]), np.array([0, 1]))

    @pytest.mark.parametrize(
        "points",
        [
            [(0.0, 0.0)],
            [(0.0, 0.0), (0.0, 1.0)],
            [(0.2, 0.0), (0.1, 1.0)],
            [(0.0, 0.0), (0.1, 1.5)],
            [(0.0, -0.1), (0.1, 1.0)],
        ],
    )
    def test_malformed_curve(self, points):
        """Test malformed curves are rejected."""
        with pytest.raises(ValidationError):
            Modulator.from_points(points)


class TestStimulationRequest:
    """Tests for the StimulationRequest class."""

    def test_scalars_are_broadcast(self):
        """Test scalars are repeated for every pulse of the topology."""
        request = StimulationRequest(
            electrodes=3,
            levels=120,
            max_levels=200,
            polarity="+",
            topology="two_pulse",
            pulse_gap_us=500.0,
            trigger="first",
        )
        assert request.electrodes == (3, 3)
        assert request.levels == (120.0, 120.0)
        assert request.max_levels == (200.0, 200.0)
        assert request.polarity == (Polarity.POSITIVE, Polarity.POSITIVE)
        assert request.topology == Topology.TWO_PULSE
        assert request.trigger == TriggerMode.FIRST
        assert request.n_pulses == 2

    def test_requests_are_immutable(self):
        """Test a request can not be changed in place."""
        request = StimulationRequest()
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.rate_pps = 900.0

    def test_replace_revalidates(self):
        """Test replacing a value runs the checks again."""
        with pytest.raises(ValidationError):
            dataclasses.replace(StimulationRequest(), rate_pps=-1.0)

    def test_alternating(self):
        """Test alternating polarity is detected."""
        assert StimulationRequest(polarity="alt").alternating
        assert not StimulationRequest().alternating

    @pytest.mark.parametrize(
        "changes",
        [
            {"phase_dur_us": 0.0},
            {"interphase_dur_us": -1.0},
            {"rate_pps": 0.0},
            {"duration_s": 0.0},
            {"jitter_window_us": -5.0},
            {"levels": -1.0},
            {"asymmetry_ratio": 3},
            {"levels": (100.0, 120.0)},
            {"pulse_gap_us": 100.0},
            {"topology": Topology.TWO_PULSE},
            {"trigger_dur_us": -1.0},
            {"trigger_dur_us": 55e6},
            {"level_range": -1},
        ],
    )
    def test_invalid_values(self, changes):
        """Test out of range values are rejected."""
        with pytest.raises(ValidationError):
            StimulationRequest(**changes)

    def test_unknown_polarity(self):
        """Test an unknown polarity string is rejected."""
        with pytest.raises(ValueError):
            StimulationRequest(polarity="x")

    def test_trigger_duration(self):
        """Test trigger durations from 0 up to just below 55 s are accepted."""
        assert StimulationRequest().trigger_dur_us == 10.0
        assert StimulationRequest(trigger_dur_us=0.0).trigger_dur_us == 0.0
        assert StimulationRequest(trigger_dur_us=54.9e6).trigger_dur_us == 54.9e6

    def test_range_max_levels_are_normalized(self):
        """Test the maximum levels of the ranges are stored as floats."""
        request = StimulationRequest(range_max_levels=[127, 127, 64, 127])
        assert request.range_max_levels == (127.0, 127.0, 64.0, 127.0)


class TestFraming:
    """Tests for the Framing class."""

    def test_defaults(self):
        """Test the default pre-stimulus pulses."""
        framing = Framing()
        assert framing.rate_pps == 5000.0
        assert framing.level == 20.0
        assert framing.phase_dur_us == 25.0
        assert framing.duration_s == 0.075

    @pytest.mark.parametrize(
        "changes",
        [
            {"rate_pps": 0.0},
            {"level": -1.0},
            {"phase_dur_us": 0.0},
            {"duration_s": -0.1},
        ],
    )
    def test_invalid_values(self, changes):
        """Test out of range values are rejected."""
        with pytest.raises(ValidationError):
            Framing(**changes)
