"""Tests for outputs/api.py module."""
import os

import pytest

from pulse_pattern_synthesizer.core import outputs
from pulse_pattern_synthesizer.core.outputs.api import render_sequence
from pulse_pattern_synthesizer.core.pulse_shapes import encode
from pulse_pattern_synthesizer.core.sequence import Channel
from pulse_pattern_synthesizer.core.sequence import PeriodicBufferCommand
from pulse_pattern_synthesizer.core.sequence import PulseCommand
from pulse_pattern_synthesizer.core.sequence import PulseSequence


@pytest.fixture
def sequence_to_send() -> PulseSequence:
    """Create a sequence with a triggered pulse followed by a repeated pulse."""
    shape = encode(4, 2)
    channels = (Channel(11, 100.0),)
    return PulseSequence(
        (
            PulseCommand(shape, channels, 2262.0, trigger=True),
            PeriodicBufferCommand(PulseCommand(shape, channels, 2262.0), 176),
        ),
        0.2,
    )


class TestRender:
    """Tests for the text rendering of sequences."""

    def test_render_sequence(self, sequence_to_send):
        """Test each command is rendered on one line."""
        assert render_sequence(sequence_to_send) == [
            "biphasic repeat=1 period_us=2262.000 electrodes=11 amplitudes=100 "
            "sign=+1 trigger=1 trigger_us=10.00",
            "biphasic repeat=176 period_us=2262.000 electrodes=11 amplitudes=100 "
            "sign=+1 trigger=0",
        ]


class TestConsoleSink:
    """Tests for ConsoleSink class."""

    def test_connect(self):
        """Test the sink can be connected."""
        sink = outputs.ConsoleSink()
        sink.connect()

    def test_send(self, sequence_to_send, capsys):
        """Test if when `send` is called, the commands are printed to console."""
        sink = outputs.ConsoleSink()
        sent = sink.send(sequence_to_send)
        captured = capsys.readouterr()
        assert captured.out.splitlines() == render_sequence(sequence_to_send)
        assert sent is sequence_to_send

    def test_send_empty_sequence(self):
        """Test an exception is raised when the sequence is empty."""
        with pytest.raises(ValueError):
            outputs.ConsoleSink().send(PulseSequence((), 1.0))


class TestFileSink:
    """Tests for FileSink class."""

    def test_connected(self, tmpdir):
        """Test the output file is opened on connect."""
        sink = outputs.FileSink(file_name=str(tmpdir.join("sequence.txt")))
        sink.connect()
        assert sink.file is not None
        assert not sink.file.closed
        sink.disconnect()

    def test_file_is_removed_on_disconnect(self, sequence_to_send, tmpdir):
        """Test the output file only lives as long as the connection."""
        file = tmpdir.join("sequence.txt")
        sink = outputs.FileSink(file_name=str(file))
        sink.connect()
        sink.send(sequence_to_send)
        sink.disconnect()
        assert sink.file is None
        assert not os.path.exists(str(file))

    def test_send_and_keep_file(self, sequence_to_send, tmpdir):
        """Test the commands are written to the file when it is kept."""
        file = tmpdir.join("sequence.txt")
        sink = outputs.FileSink(file_name=str(file), keep_file=True)
        sink.connect()
        sink.send(sequence_to_send)
        sink.disconnect()
        lines = file.read().splitlines()
        assert lines[0] == "# step_us=0.2"
        assert lines[1:] == render_sequence(sequence_to_send)

    def test_disconnect_without_connect(self):
        """Test disconnecting a sink that was never connected does nothing."""
        outputs.FileSink().disconnect()

    def test_disconnect_releases_the_file(self, sequence_to_send, tmpdir):
        """Test a disconnected sink neither writes nor closes the file again."""
        file = tmpdir.join("sequence.txt")
        sink = outputs.FileSink(file_name=str(file), keep_file=True)
        sink.connect()
        opened_file = sink.file
        sink.send(sequence_to_send)
        sink.disconnect()
        assert opened_file.closed
        sink.send(sequence_to_send)
        sink.disconnect()
        assert len(file.read().splitlines()) == 1 + len(sequence_to_send)
