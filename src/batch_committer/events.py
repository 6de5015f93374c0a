"""
Committer lifecycle events.

Provides an in-process pub/sub channel for lifecycle and batch boundary
events. Monitoring and recovery tooling subscribe to it (e.g. to trigger
re-ingestion when a BATCH_ERROR is seen).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from loguru import logger

from .models import CommitterRequest


class CommitterEventName(str, Enum):
    """Names of the events fired by a committer."""

    INIT_BEGIN = "COMMITTER_INIT_BEGIN"
    INIT_END = "COMMITTER_INIT_END"
    INIT_ERROR = "COMMITTER_INIT_ERROR"
    ACCEPT_YES = "COMMITTER_ACCEPT_YES"
    ACCEPT_NO = "COMMITTER_ACCEPT_NO"
    ACCEPT_ERROR = "COMMITTER_ACCEPT_ERROR"
    UPSERT_BEGIN = "COMMITTER_UPSERT_BEGIN"
    UPSERT_END = "COMMITTER_UPSERT_END"
    UPSERT_ERROR = "COMMITTER_UPSERT_ERROR"
    DELETE_BEGIN = "COMMITTER_DELETE_BEGIN"
    DELETE_END = "COMMITTER_DELETE_END"
    DELETE_ERROR = "COMMITTER_DELETE_ERROR"
    BATCH_BEGIN = "COMMITTER_BATCH_BEGIN"
    BATCH_END = "COMMITTER_BATCH_END"
    BATCH_ERROR = "COMMITTER_BATCH_ERROR"
    CLOSE_BEGIN = "COMMITTER_CLOSE_BEGIN"
    CLOSE_END = "COMMITTER_CLOSE_END"
    CLOSE_ERROR = "COMMITTER_CLOSE_ERROR"
    CLEAN_BEGIN = "COMMITTER_CLEAN_BEGIN"
    CLEAN_END = "COMMITTER_CLEAN_END"
    CLEAN_ERROR = "COMMITTER_CLEAN_ERROR"

    @property
    def is_error(self) -> bool:
        return self.value.endswith("_ERROR")


@dataclass(frozen=True)
class CommitterEvent:
    """Immutable committer event.

    Attributes:
        name: Event name
        source: Identifies the firing component (e.g. "committer-1", "dispatcher")
        request: Request the event relates to, for upsert/delete/accept events
        cause: Error behind an ``*_ERROR`` event
        batch_size: Number of requests in the batch, for BATCH_END events
    """

    name: CommitterEventName
    source: str
    request: Optional[CommitterRequest] = None
    cause: Optional[BaseException] = None
    batch_size: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.name.is_error

    def __str__(self) -> str:
        parts = [f"{self.name.value} source={self.source}"]
        if self.request is not None:
            parts.append(f"ref={self.request.reference}")
        if self.batch_size is not None:
            parts.append(f"batch_size={self.batch_size}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " ".join(parts)


class EventListener(Protocol):
    """Protocol for event listeners.

    Listeners are plain callables accepting a CommitterEvent.
    Exceptions are caught and logged to prevent cascade failures.
    """

    def __call__(self, event: CommitterEvent) -> None:
        """Handle committer event."""
        ...


class EventBus:
    """In-process pub/sub bus for committer events.

    Listeners run synchronously on the publishing thread, in registration
    order. One listener's failure does not affect others, nor the operation
    that fired the event.

    Example:
        bus = EventBus()

        def on_event(event: CommitterEvent):
            if event.name is CommitterEventName.BATCH_ERROR:
                schedule_reingest()

        bus.subscribe(on_event)
    """

    def __init__(self) -> None:
        self._subs: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        """Add an event listener (no-op if already subscribed)."""
        if listener not in self._subs:
            self._subs.append(listener)
            logger.debug(f"Event listener added (total: {len(self._subs)})")

    def unsubscribe(self, listener: EventListener) -> None:
        """Remove an event listener.

        Note:
            No-op if listener not found (safe to call multiple times).
        """
        try:
            self._subs.remove(listener)
            logger.debug(f"Event listener removed (total: {len(self._subs)})")
        except ValueError:
            pass

    def publish(self, event: CommitterEvent) -> None:
        """Publish event to all listeners.

        Args:
            event: Committer event to publish
        """
        if event.is_error:
            logger.error(f"Committer event: {event}")
        else:
            logger.debug(f"Committer event: {event}")

        if not self._subs:
            return

        # Iterate over copy to allow unsubscribe during iteration
        for listener in list(self._subs):
            try:
                listener(event)
            except Exception as exc:
                logger.warning(
                    f"Event listener error (ignored) on {event.name.value}: "
                    f"{type(exc).__name__}: {exc}"
                )

    @property
    def subscriber_count(self) -> int:
        """Number of active listeners."""
        return len(self._subs)


# --- Singleton accessor for in-process use ---

_bus: Optional[EventBus] = None


def event_bus() -> EventBus:
    """Get the process-wide EventBus instance.

    Example:
        from batch_committer import event_bus

        event_bus().subscribe(my_listener)
    """
    global _bus
    if _bus is None:
        _bus = EventBus()
        logger.debug("EventBus singleton initialized")
    return _bus
