"""Sinks that render pulse sequences for a driver or for inspection."""
import abc
import logging
import os
from typing import Any, IO, List, Optional

from pulse_pattern_synthesizer.core.sequence import Command
from pulse_pattern_synthesizer.core.sequence import PeriodicBufferCommand
from pulse_pattern_synthesizer.core.sequence import PulseCommand
from pulse_pattern_synthesizer.core.sequence import PulseSequence


def _render_pulse(pulse: PulseCommand, repeat_count: int) -> str:
    electrodes = ",".join(str(channel.electrode) for channel in pulse.channels)
    amplitudes = ",".join(f"{channel.amplitude:g}" for channel in pulse.channels)
    topology = pulse.shape.topology.value if pulse.shape.topology else "null"
    return (
        f"{topology} repeat={repeat_count} period_us={pulse.period_us:.3f} "
        f"electrodes={electrodes or '-'} amplitudes={amplitudes or '-'} "
        f"sign={pulse.sign:+g} trigger={int(pulse.trigger)}"
        + (f" trigger_us={pulse.trigger_dur_us:.2f}" if pulse.trigger else "")
    )


def render_command(command: Command) -> str:
    """Render a command as one line of text."""
    if isinstance(command, PeriodicBufferCommand):
        return _render_pulse(command.pulse, command.repeat_count)
    return _render_pulse(command, 1)


def render_sequence(sequence: PulseSequence) -> List[str]:
    """Render a sequence as lines of text, one per command."""
    return [render_command(command) for command in sequence]


class SequenceSink(abc.ABC):
    """Represents an abstract sink that pulse sequences can be sent to."""

    @abc.abstractmethod
    def connect(self) -> None:
        """Connect to the sink."""
        pass

    def disconnect(self) -> None:
        """Disconnect from the sink. The default implementation does nothing."""
        pass

    @abc.abstractmethod
    def _send(self, sequence: PulseSequence) -> None:
        """Send a sequence to the sink.

        Args:
            sequence: Sequence to send.
        """
        pass

    def send(self, sequence: PulseSequence) -> PulseSequence:
        """Send a sequence and return it unchanged.

        Args:
            sequence: Sequence to send.

        Returns:
            The input sequence unchanged.

        Raises:
            ValueError: If the sequence has no command.
        """
        if not len(sequence):
            raise ValueError("Can not send a sequence without any command.")
        self._send(sequence)
        return sequence


class ConsoleSink(SequenceSink):
    """Represents a sink that prints sequences to the terminal."""

    def connect(self) -> None:
        """Connect to the console. Nothing to do."""
        pass

    def _send(self, sequence: PulseSequence) -> None:
        """Print one line per command."""
        for line in render_sequence(sequence):
            print(line)


class FileSink(SequenceSink):
    """Represents a sink that writes sequences to a file.

    The file only lives as long as the connection, unless `keep_file` is set.
    """

    def __init__(self, file_name: str = "sequence.txt", keep_file: bool = False):
        """Initialize FileSink class.

        Args:
            file_name: File path to write the sequences to.
              Defaults to "sequence.txt".
            keep_file: Keep the file after disconnecting. Defaults to False.
        """
        self.logger = logging.getLogger(__name__)
        self.file: Optional[IO[Any]] = None
        self.file_name = file_name
        self.keep_file = keep_file

    def _send(self, sequence: PulseSequence) -> None:
        """Write one line per command into the file."""
        if self.file is not None:
            self.file.write(f"# step_us={sequence.step_us:g}\n")
            for line in render_sequence(sequence):
                self.file.write(f"{line}\n")

    def connect(self) -> None:
        """Open the output file."""
        self.logger.info(f"Opening output file {self.file_name}")
        self.file = open(self.file_name, "w")

    def disconnect(self) -> None:
        """Close the output file and remove it unless it should be kept."""
        if self.file is None:
            return
        self.file.close()
        self.file = None
        if not self.keep_file and os.path.exists(self.file_name):
            self.logger.info(f"Removing output file {self.file_name}")
            os.remove(self.file_name)
