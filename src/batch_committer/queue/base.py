"""Durable queue protocol shared by every queue strategy."""

from __future__ import annotations

from typing import Iterable, Iterator, Protocol, runtime_checkable

from ..context import CommitterContext
from ..models import CommitterRequest, QueueEntry


@runtime_checkable
class DurableQueue(Protocol):
    """Append-only store of pending requests.

    Invariants:
        - ``drain`` yields entries in enqueue (position) order
        - within one open session an entry is yielded at most once
        - entries leave storage only through ``acknowledge`` or ``clean``
        - ``close`` never loses unacknowledged entries
    """

    def init(self, context: CommitterContext) -> None:
        """Open (creating if needed) the storage; raises InitializationError."""

    def enqueue(self, request: CommitterRequest) -> QueueEntry:
        """Durably record ``request``; raises QueueWriteError."""

    def drain(self) -> Iterator[QueueEntry]:
        """Lazily iterate pending entries in FIFO order; raises QueueReadError."""

    def acknowledge(self, entries: Iterable[QueueEntry]) -> None:
        """Permanently remove committed entries."""

    def pending_count(self) -> int:
        """Number of entries held in storage."""

    def close(self) -> None:
        """Release storage handles (idempotent)."""

    def clean(self) -> None:
        """Discard every stored entry and the storage itself."""


__all__ = ["DurableQueue"]
