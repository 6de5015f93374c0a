"""
Batch committer lifecycle.

init -> (upsert | delete)* -> close, with clean as an out-of-band reset.
Requests are queued durably while the committer is active and handed to
the sink in bounded batches when it closes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from .config import CommitterSettings, get_settings
from .context import CommitterContext
from .dispatcher import BatchConfig, BatchDispatcher, Consumer, as_consumer
from .errors import (
    CommitterException,
    CommitterStateError,
    InitializationError,
    QueueWriteError,
)
from .events import CommitterEvent, CommitterEventName, EventBus, event_bus
from .filters import PropertyMatcher, Restrictions, apply_field_mappings
from .metrics import COMMITTER_REQUESTS_TOTAL
from .models import CommitterRequest, DeleteRequest, UpsertRequest
from .queue import DurableQueue, create_queue


class CommitterState(str, Enum):
    """Lifecycle states of a committer."""

    CREATED = "created"
    INITIALIZED = "initialized"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


class BatchCommitter:
    """Queues requests durably and commits them to a sink in batches.

    The sink is either a callable taking an iterator of requests, or an
    object with a ``consume(batch)`` method. Sink objects may also expose
    ``open(context)`` and ``close()``; they are called on init and close.

    Example:
        sink = MemorySink()
        with BatchCommitter(sink, CommitterSettings(max_batch_size=100)) as committer:
            for doc in docs:
                committer.upsert(UpsertRequest(doc.url, doc.meta, doc.stream))
        # closing dispatched everything to the sink
    """

    def __init__(
        self,
        sink: Consumer,
        settings: Optional[CommitterSettings] = None,
        *,
        queue: Optional[DurableQueue] = None,
        context: Optional[CommitterContext] = None,
        restrictions: Optional[Iterable[PropertyMatcher]] = None,
        field_mappings: Optional[Mapping[str, Optional[str]]] = None,
        committer_id: Optional[str] = None,
    ):
        self._sink = sink
        self._consume = as_consumer(sink)
        self._settings = settings or get_settings()
        self._queue = queue
        self._context = context
        self._restrictions = Restrictions(restrictions)
        self._field_mappings: dict[str, Optional[str]] = dict(field_mappings or {})
        self._id = committer_id or f"committer-{id(self):x}"
        self._state = CommitterState.CREATED
        self._dispatcher: Optional[BatchDispatcher] = None

    # --------------------------- properties

    @property
    def committer_id(self) -> str:
        return self._id

    @property
    def state(self) -> CommitterState:
        return self._state

    @property
    def settings(self) -> CommitterSettings:
        return self._settings

    @property
    def queue(self) -> Optional[DurableQueue]:
        return self._queue

    @property
    def context(self) -> Optional[CommitterContext]:
        return self._context

    @property
    def restrictions(self) -> Restrictions:
        return self._restrictions

    @property
    def field_mappings(self) -> Mapping[str, Optional[str]]:
        return dict(self._field_mappings)

    def add_restriction(self, *matchers: PropertyMatcher) -> None:
        self._restrictions.add(*matchers)

    def set_field_mapping(self, from_field: str, to_field: Optional[str]) -> None:
        self._field_mappings[from_field] = to_field

    def pending_count(self) -> int:
        """Requests currently waiting in the queue (0 before init)."""
        if self._queue is None or self._state is CommitterState.CREATED:
            return 0
        return self._queue.pending_count()

    # --------------------------- lifecycle

    def init(self, context: Optional[CommitterContext] = None) -> None:
        """Open the queue (and sink); optionally commit leftovers of a previous run."""
        if self._state is not CommitterState.CREATED:
            raise CommitterStateError(f"Cannot init committer {self._id} in state {self._state.value}")

        self._context = context or self._context or CommitterContext.create(self._settings.work_dir)
        self._fire(CommitterEventName.INIT_BEGIN)
        try:
            if self._queue is None:
                self._queue = create_queue(self._settings, self._context.work_dir)
            self._queue.init(self._context)
            self._state = CommitterState.INITIALIZED
            self._dispatcher = BatchDispatcher(
                BatchConfig(
                    max_batch_size=self._settings.max_batch_size,
                    count_deletes=self._settings.count_deletes_toward_threshold,
                ),
                bus=self._bus,
                source=self._id,
            )
            self._open_sink()
            if self._settings.commit_leftovers_on_init:
                logger.info("Committing any leftovers...")
                count = self._dispatcher.dispatch(self._queue, self._consume)
                if count:
                    logger.info(f"{count} leftover request(s) committed.")
                else:
                    logger.info("No leftovers.")
        except Exception as exc:
            self._state = CommitterState.FAILED
            err = exc if isinstance(exc, InitializationError) else InitializationError(
                f"Could not initialize committer {self._id}: {exc}"
            )
            self._fire(CommitterEventName.INIT_ERROR, cause=err)
            self._release()
            if err is exc:
                raise
            raise err from exc

        self._state = CommitterState.ACTIVE
        self._fire(CommitterEventName.INIT_END)
        logger.info(f"Committer {self._id} initialized ({self._queue!r})")

    def accept(self, request: CommitterRequest) -> bool:
        """Whether this committer's restrictions let ``request`` through."""
        try:
            accepted = self._restrictions.matches(request.metadata)
        except Exception as exc:
            self._fire(CommitterEventName.ACCEPT_ERROR, request=request, cause=exc)
            raise
        self._fire(
            CommitterEventName.ACCEPT_YES if accepted else CommitterEventName.ACCEPT_NO,
            request=request,
        )
        return accepted

    def upsert(self, request: UpsertRequest) -> None:
        if not isinstance(request, UpsertRequest):
            raise TypeError(f"upsert() expects an UpsertRequest, got {type(request).__name__}")
        self._queue_request(
            request,
            CommitterEventName.UPSERT_BEGIN,
            CommitterEventName.UPSERT_END,
            CommitterEventName.UPSERT_ERROR,
        )

    def delete(self, request: DeleteRequest) -> None:
        if not isinstance(request, DeleteRequest):
            raise TypeError(f"delete() expects a DeleteRequest, got {type(request).__name__}")
        self._queue_request(
            request,
            CommitterEventName.DELETE_BEGIN,
            CommitterEventName.DELETE_END,
            CommitterEventName.DELETE_ERROR,
        )

    def close(self) -> None:
        """Commit everything queued, then close the sink and the queue.

        The queue is closed on every exit path. A dispatch failure is raised
        once the queue is closed. Safe to call multiple times.
        """
        if self._state is CommitterState.CLOSED:
            logger.debug(f"Committer {self._id} already closed")
            return
        if self._state is CommitterState.CREATED:
            self._state = CommitterState.CLOSED
            return
        if self._state is CommitterState.FAILED:
            self._release()
            return
        if self._state is CommitterState.CLOSING:
            raise CommitterStateError(f"Committer {self._id} is already closing")

        self._state = CommitterState.CLOSING
        self._fire(CommitterEventName.CLOSE_BEGIN)
        try:
            try:
                try:
                    committed = self._dispatcher.dispatch(self._queue, self._consume)
                except Exception:
                    self._close_sink(quiet=True)
                    raise
                self._close_sink()
            finally:
                self._queue.close()
        except Exception as exc:
            self._state = CommitterState.FAILED
            err = exc if isinstance(exc, CommitterException) else CommitterException(
                f"Could not close committer {self._id}: {exc}"
            )
            self._fire(CommitterEventName.CLOSE_ERROR, cause=err)
            if err is exc:
                raise
            raise err from exc

        self._state = CommitterState.CLOSED
        self._fire(CommitterEventName.CLOSE_END)
        logger.info(f"Committer {self._id} closed ({committed} request(s) committed)")

    def clean(self) -> None:
        """Discard every queued request without committing it."""
        if self._state in (CommitterState.CLOSING, CommitterState.FAILED):
            raise CommitterStateError(f"Cannot clean committer {self._id} in state {self._state.value}")

        if self._context is None:
            self._context = CommitterContext.create(self._settings.work_dir)
        self._fire(CommitterEventName.CLEAN_BEGIN)
        try:
            if self._queue is None:
                self._queue = create_queue(self._settings, self._context.work_dir)
            self._queue.clean()
        except Exception as exc:
            err = exc if isinstance(exc, CommitterException) else QueueWriteError(
                f"Could not clean committer {self._id}: {exc}"
            )
            self._fire(CommitterEventName.CLEAN_ERROR, cause=err)
            if err is exc:
                raise
            raise err from exc
        self._fire(CommitterEventName.CLEAN_END)

    def __enter__(self) -> "BatchCommitter":
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------------------- internals

    @property
    def _bus(self) -> EventBus:
        return self._context.bus if self._context is not None else event_bus()

    def _queue_request(
        self,
        request: CommitterRequest,
        begin: CommitterEventName,
        end: CommitterEventName,
        error: CommitterEventName,
    ) -> None:
        if self._state is not CommitterState.ACTIVE:
            raise CommitterStateError(
                f"Cannot {request.operation} {request.reference}: committer {self._id} is {self._state.value}"
            )

        self._fire(begin, request=request)
        try:
            self._queue.enqueue(apply_field_mappings(request, self._field_mappings))
        except Exception as exc:
            COMMITTER_REQUESTS_TOTAL.labels(operation=request.operation, status="failure").inc()
            err = exc if isinstance(exc, CommitterException) else QueueWriteError(
                f"Could not queue {request.operation} request for {request.reference}: {exc}"
            )
            self._fire(error, request=request, cause=err)
            if err is exc:
                raise
            raise err from exc
        COMMITTER_REQUESTS_TOTAL.labels(operation=request.operation, status="success").inc()
        self._fire(end, request=request)

    def _open_sink(self) -> None:
        hook = getattr(self._sink, "open", None)
        if callable(hook):
            hook(self._context)

    def _close_sink(self, quiet: bool = False) -> None:
        hook = getattr(self._sink, "close", None)
        if not callable(hook):
            return
        try:
            hook()
        except Exception as exc:
            if not quiet:
                raise
            logger.error(f"Error closing sink of committer {self._id}: {type(exc).__name__}: {exc}")

    def _release(self) -> None:
        """Best-effort cleanup after a failure."""
        self._close_sink(quiet=True)
        if self._queue is None:
            return
        try:
            self._queue.close()
        except Exception as exc:
            logger.error(f"Error closing queue of committer {self._id}: {type(exc).__name__}: {exc}")

    def _fire(self, name: CommitterEventName, **kwargs: Any) -> None:
        self._bus.publish(CommitterEvent(name=name, source=self._id, **kwargs))

    def __repr__(self) -> str:
        return f"BatchCommitter(id={self._id}, state={self._state.value}, queue={self._queue!r})"
