"""Tests for pulse_shapes.py module."""
import numpy as np
import pytest

from pulse_pattern_synthesizer.core.pulse_shapes import ASYMMETRY_RATIOS
from pulse_pattern_synthesizer.core.pulse_shapes import encode
from pulse_pattern_synthesizer.core.pulse_shapes import Phase
from pulse_pattern_synthesizer.core.pulse_shapes import Polarity
from pulse_pattern_synthesizer.core.pulse_shapes import PulseShape
from pulse_pattern_synthesizer.core.pulse_shapes import Topology
from pulse_pattern_synthesizer.errors import ValidationError


def _phase_tuples(shape: PulseShape):
    return [(p.start, p.duration, p.amplitude, p.pulse_index) for p in shape.phases]


class TestEncode:
    """Tests for the encode function."""

    def test_biphasic(self):
        """Test a symmetric biphasic pulse starts with the requested polarity."""
        shape = encode(4, 2, Polarity.NEGATIVE)
        assert _phase_tuples(shape) == [(0, 4, -1.0, 0), (6, 4, 1.0, 0)]
        assert shape.duration_steps == 10
        assert shape.topology == Topology.BIPHASIC

    def test_positive_polarity(self):
        """Test a positive pulse is the mirror of a negative one."""
        shape = encode(4, 2, Polarity.POSITIVE)
        assert [p.amplitude for p in shape.phases] == [1.0, -1.0]

    def test_asymmetric_biphasic(self):
        """Test the long, low phase comes first."""
        shape = encode(4, 2, Polarity.NEGATIVE, asymmetry_ratio=4)
        assert _phase_tuples(shape) == [(0, 16, -0.25, 0), (18, 4, 1.0, 0)]

    @pytest.mark.parametrize("ratio", ASYMMETRY_RATIOS)
    @pytest.mark.parametrize("topology", [Topology.BIPHASIC, Topology.TWO_PULSE])
    def test_charge_balance_for_all_ratios(self, ratio, topology):
        """Test every pulse of asymmetric shapes is charge balanced."""
        shape = encode(
            3, 1, Polarity.NEGATIVE, ratio, topology, pulse_gap_steps=5
        )
        for pulse_index in shape.pulse_indices:
            assert shape.net_charge(pulse_index) == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize(
        "topology",
        [Topology.TRIPHASIC, Topology.PRECISION_TRIPHASIC, Topology.QUADRAPHASIC],
    )
    def test_charge_balance_for_multiphasic_pulses(self, topology):
        """Test multiphasic pulses are charge balanced."""
        shape = encode(4, 2, Polarity.POSITIVE, topology=topology, separation_steps=3)
        assert shape.net_charge() == pytest.approx(0.0, abs=1e-12)

    def test_triphasic(self):
        """Test the flanks of a triphasic pulse have half the amplitude."""
        shape = encode(4, 2, Polarity.NEGATIVE, topology=Topology.TRIPHASIC)
        assert _phase_tuples(shape) == [
            (0, 4, -0.5, 0),
            (6, 4, 1.0, 0),
            (12, 4, -0.5, 0),
        ]

    def test_precision_triphasic(self):
        """Test the flanks of a precision triphasic pulse have half the duration."""
        shape = encode(4, 2, Polarity.NEGATIVE, topology=Topology.PRECISION_TRIPHASIC)
        assert _phase_tuples(shape) == [
            (0, 2, -1.0, 0),
            (4, 4, 1.0, 0),
            (10, 2, -1.0, 0),
        ]

    def test_quadraphasic(self):
        """Test the two halves of a quadraphasic pulse have opposite polarity."""
        shape = encode(
            4, 2, Polarity.NEGATIVE, topology=Topology.QUADRAPHASIC, separation_steps=3
        )
        assert [(p.start, p.amplitude) for p in shape.phases] == [
            (0, -1.0),
            (6, 1.0),
            (13, 1.0),
            (19, -1.0),
        ]
        assert [p.group for p in shape.phases] == [0, 0, 1, 1]

    def test_two_pulse(self):
        """Test the second pulse is shifted by the pulse gap and reversed."""
        shape = encode(
            4,
            1,
            Polarity.NEGATIVE,
            2,
            Topology.TWO_PULSE,
            pulse_gap_steps=46,
            second_polarity=Polarity.POSITIVE,
        )
        assert _phase_tuples(shape) == [
            (0, 8, -0.5, 0),
            (9, 4, 1.0, 0),
            (59, 4, 1.0, 1),
            (64, 8, -0.5, 1),
        ]
        assert shape.pulse_indices == (0, 1)

    @pytest.mark.parametrize(
        "args, kwargs",
        [
            ((0, 2), {}),
            ((4, -1), {}),
            ((4, 2, Polarity.NEGATIVE, 3), {}),
            ((4, 2, Polarity.NEGATIVE, 2, Topology.TRIPHASIC), {}),
            ((4, 2), {"pulse_gap_steps": -1}),
        ],
    )
    def test_invalid_parameters(self, args, kwargs):
        """Test parameters that can not produce a pulse are rejected."""
        with pytest.raises(ValidationError):
            encode(*args, **kwargs)


class TestPulseShape:
    """Tests for the PulseShape class."""

    def test_breakpoints(self):
        """Test each phase contributes a rectangle."""
        times, amplitudes = encode(4, 2).breakpoints()
        np.testing.assert_array_equal(times, [0, 0, 4, 4, 6, 6, 10, 10])
        np.testing.assert_array_equal(amplitudes, [0, -1, -1, 0, 0, 1, 1, 0])

    def test_breakpoints_of_one_pulse(self):
        """Test breakpoints can be restricted to one pulse of a pair."""
        shape = encode(4, 1, topology=Topology.TWO_PULSE, pulse_gap_steps=10)
        times, _ = shape.breakpoints(1)
        assert times[0] == 19

    def test_null_shape(self):
        """Test a null shape has a duration but no phase."""
        shape = PulseShape.null(325)
        assert shape.duration_steps == 325
        assert shape.net_charge() == 0
        times, amplitudes = shape.breakpoints()
        np.testing.assert_array_equal(times, [0, 325])
        np.testing.assert_array_equal(amplitudes, [0, 0])

    def test_same_polarity_phases_are_rejected(self):
        """Test consecutive phases of a pulse must alternate polarity."""
        with pytest.raises(ValidationError):
            PulseShape((Phase(0, 4, -1.0), Phase(6, 4, -1.0)))

    def test_overlapping_phases_are_rejected(self):
        """Test phases must not overlap."""
        with pytest.raises(ValidationError):
            PulseShape((Phase(0, 4, -1.0), Phase(3, 4, 1.0)))

    def test_non_positive_phase_is_rejected(self):
        """Test phases must have a positive duration."""
        with pytest.raises(ValidationError):
            PulseShape((Phase(0, 0, -1.0),))
