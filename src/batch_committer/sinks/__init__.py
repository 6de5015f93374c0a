"""Reference sink consumers.

Production sinks (search engines, databases) live with the applications;
these cover testing, troubleshooting and file-based hand-offs.
"""

from .base import BaseSink
from .files import Column, CSVFileSink, FileSink, NDJSONFileSink
from .log import LogSink
from .memory import MemorySink

__all__ = [
    "BaseSink",
    "FileSink",
    "NDJSONFileSink",
    "CSVFileSink",
    "Column",
    "LogSink",
    "MemorySink",
]
