"""Device-ready pulse sequences and electrodograms.

A :class:`PulseSequence` is the ordered list of commands that a serialization
sink renders into a driver-specific protocol. An :class:`Electrodogram` is the
same stimulus expressed as time/amplitude traces, one per electrode.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Tuple, Union

from numpy import ndarray
import numpy as np

from pulse_pattern_synthesizer.core.pulse_shapes import PulseShape


@dataclass(frozen=True)
class Channel:
    """Where and how strongly one pulse of a shape is delivered."""

    electrode: int
    """Electrode id, starting at 1."""

    amplitude: float
    """Amplitude of a full-scale phase in device units."""


@dataclass(frozen=True)
class PulseCommand:
    """A single pulse, followed by silence up to the end of its period."""

    shape: PulseShape
    channels: Tuple[Channel, ...]
    """One channel per pulse index of the shape."""

    period_us: float
    sign: float = 1.0
    """Multiplies the shape amplitudes, -1 inverts the polarity of the pulse."""

    trigger: bool = False
    """Whether a trigger is sent with this pulse."""

    trigger_dur_us: float = 10.0
    """Duration of the trigger in microseconds."""


@dataclass(frozen=True)
class PeriodicBufferCommand:
    """A pulse command repeated `repeat_count` times."""

    pulse: PulseCommand
    repeat_count: int

    @property
    def period_us(self) -> float:
        """Period of each repetition."""
        return self.pulse.period_us


Command = Union[PulseCommand, PeriodicBufferCommand]


@dataclass(frozen=True)
class PulseSequence:
    """Ordered commands to be executed by the device."""

    commands: Tuple[Command, ...]
    step_us: float
    """Duration of one shape step in microseconds."""

    def __len__(self):
        """Return the number of commands."""
        return len(self.commands)

    def __iter__(self) -> Iterator[Command]:
        """Iterate over the commands."""
        return iter(self.commands)

    @property
    def n_pulses(self) -> int:
        """Number of pulses played by the sequence."""
        return sum(_repeats(command) for command in self.commands)

    @property
    def duration_us(self) -> float:
        """Total duration of the sequence."""
        return sum(command.period_us * _repeats(command) for command in self.commands)

    def expand(self) -> Iterator[PulseCommand]:
        """Iterate over every pulse, unrolling the periodic commands."""
        for command in self.commands:
            if isinstance(command, PeriodicBufferCommand):
                for _ in range(command.repeat_count):
                    yield command.pulse
            else:
                yield command


def _repeats(command: Command) -> int:
    if isinstance(command, PeriodicBufferCommand):
        return command.repeat_count
    return 1


@dataclass(frozen=True, eq=False)
class ElectrodeTrace:
    """Time/amplitude breakpoints delivered on one electrode."""

    t_s: ndarray
    """Breakpoint times in seconds from the stimulus onset."""

    amplitude: ndarray
    """Breakpoint amplitudes in device units."""

    pulse_start_times_s: ndarray
    """Start time of every pulse delivered on the electrode."""

    def __post_init__(self):
        """Freeze the arrays and check that their shapes match."""
        if self.t_s.shape != self.amplitude.shape:
            raise ValueError(
                f"Number of breakpoint times ({len(self.t_s)}) does not match the "
                f"number of amplitudes ({len(self.amplitude)})"
            )
        for array in (self.t_s, self.amplitude, self.pulse_start_times_s):
            array.setflags(write=False)

    @classmethod
    def empty_trace(cls) -> ElectrodeTrace:
        """Create a trace for an electrode that is not stimulated."""
        return cls(np.array([]), np.array([]), np.array([]))

    @property
    def empty(self) -> bool:
        """Check if nothing is delivered on the electrode."""
        return len(self.pulse_start_times_s) == 0

    def __eq__(self, o: object) -> bool:
        """Compare the arrays of two traces."""
        if not isinstance(o, ElectrodeTrace):
            return False
        return (
            np.array_equal(self.t_s, o.t_s)
            and np.array_equal(self.amplitude, o.amplitude)
            and np.array_equal(self.pulse_start_times_s, o.pulse_start_times_s)
        )


@dataclass(frozen=True)
class Electrodogram:
    """One trace per electrode slot of the platform."""

    traces: Tuple[ElectrodeTrace, ...]

    @classmethod
    def empty(cls, n_electrodes: int) -> Electrodogram:
        """Create an electrodogram where no electrode is stimulated."""
        return cls(tuple(ElectrodeTrace.empty_trace() for _ in range(n_electrodes)))

    @property
    def n_electrodes(self) -> int:
        """Number of electrode slots."""
        return len(self.traces)

    @property
    def active_electrodes(self) -> Tuple[int, ...]:
        """Ids of the electrodes that receive at least one pulse."""
        return tuple(
            electrode
            for electrode, trace in enumerate(self.traces, start=1)
            if not trace.empty
        )

    def __getitem__(self, electrode: int) -> ElectrodeTrace:
        """Get the trace of an electrode by its id (starting at 1)."""
        if electrode < 1 or electrode > len(self.traces):
            raise IndexError(f"Electrode {electrode} out of range")
        return self.traces[electrode - 1]
