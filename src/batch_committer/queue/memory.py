from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Iterable, Iterator, Optional

from loguru import logger

from ..context import CommitterContext
from ..errors import QueueWriteError
from ..models import CommitterRequest, QueueEntry


class MemoryQueue:
    """Process-local queue. Nothing survives the process; meant for tests.

    Follows the same drain/acknowledge rules as FSQueue so it can stand in
    for it.
    """

    def __init__(self) -> None:
        self._entries: "OrderedDict[int, QueueEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._next_position = 0
        self._cursor = -1
        self._open = False

    def init(self, context: Optional[CommitterContext] = None) -> None:
        self._cursor = -1
        self._open = True
        logger.debug(f"Memory queue initialized ({len(self._entries)} pending)")

    @property
    def is_open(self) -> bool:
        return self._open

    def enqueue(self, request: CommitterRequest) -> QueueEntry:
        with self._lock:
            if not self._open:
                raise QueueWriteError(f"Queue is not open, cannot queue {request.reference}")
            entry = QueueEntry(self._next_position, request)
            self._entries[entry.position] = entry
            self._next_position += 1
        return entry

    def drain(self) -> Iterator[QueueEntry]:
        for position in list(self._entries):
            if position <= self._cursor:
                continue
            entry = self._entries.get(position)
            if entry is None:
                continue
            self._cursor = position
            yield entry

    def acknowledge(self, entries: Iterable[QueueEntry]) -> None:
        with self._lock:
            for entry in entries:
                self._entries.pop(entry.position, None)

    def pending_count(self) -> int:
        return len(self._entries)

    def close(self) -> None:
        self._open = False

    def clean(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._next_position = 0
            self._cursor = -1
        logger.info(f"Memory queue cleaned ({dropped} entries discarded)")
