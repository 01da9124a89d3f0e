"""Sinks that pulse sequences can be sent to."""
from .api import ConsoleSink
from .api import FileSink
from .api import SequenceSink
