"""
Batch dispatcher: drains a durable queue into a sink, one bounded batch at
a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from time import monotonic
from typing import Callable, Iterator, List, Optional, Protocol, Union

from loguru import logger

from .errors import CommitterException, QueueReadError, SinkError
from .events import CommitterEvent, CommitterEventName, EventBus, event_bus
from .metrics import COMMITTER_BATCH_LATENCY_MS, COMMITTER_BATCH_SIZE, COMMITTER_BATCHES_TOTAL
from .models import CommitterRequest, DeleteRequest, QueueEntry
from .queue.base import DurableQueue


class BatchConsumer(Protocol):
    """Object-style sink: anything exposing ``consume(batch)``."""

    def consume(self, batch: Iterator[CommitterRequest]) -> None: ...


ConsumerFn = Callable[[Iterator[CommitterRequest]], None]
Consumer = Union[BatchConsumer, ConsumerFn]


def as_consumer(consumer: Consumer) -> ConsumerFn:
    """Normalize a sink object or plain callable to a callable."""
    consume = getattr(consumer, "consume", None)
    if callable(consume):
        return consume
    if callable(consumer):
        return consumer
    raise TypeError(f"{consumer!r} is neither callable nor has a consume() method")


@dataclass(frozen=True)
class BatchConfig:
    """Batch size threshold."""

    max_batch_size: int = 20
    count_deletes: bool = True  # deletes count toward max_batch_size

    def __post_init__(self) -> None:
        if self.max_batch_size <= 0:
            raise ValueError("max_batch_size must be > 0")


class _Batch:
    """Single-pass iterator over the next contiguous run of queue entries.

    Stops right after the entry that reaches the size bound, so entries
    belonging to the next batch are never pulled from the drain.
    """

    def __init__(self, first: QueueEntry, rest: Iterator[QueueEntry], config: BatchConfig):
        self.entries: List[QueueEntry] = []
        self.read_error: Optional[QueueReadError] = None
        self._gen = self._generate(first, rest, config)

    def __iter__(self) -> "_Batch":
        return self

    def __next__(self) -> CommitterRequest:
        return next(self._gen)

    def exhaust(self) -> None:
        for _ in self._gen:
            pass

    def _generate(
        self, first: QueueEntry, rest: Iterator[QueueEntry], config: BatchConfig
    ) -> Iterator[CommitterRequest]:
        counted = 0
        entry = first
        while True:
            self.entries.append(entry)
            yield entry.request
            if config.count_deletes or not isinstance(entry.request, DeleteRequest):
                counted += 1
            if counted >= config.max_batch_size:
                return
            try:
                entry = next(rest)
            except StopIteration:
                return
            except QueueReadError as e:
                self.read_error = e
                raise


class BatchDispatcher:
    """Hands queued requests to a sink consumer in bounded batches.

    Batches run strictly one after another. A failing batch stops the
    dispatch: it is reported with one BATCH_ERROR event, left
    unacknowledged in the queue, and its error is raised. Earlier batches
    stay committed. There is no retry.

    Example:
        dispatcher = BatchDispatcher(BatchConfig(max_batch_size=100))
        dispatcher.dispatch(queue, sink)
    """

    def __init__(
        self,
        config: Optional[BatchConfig] = None,
        bus: Optional[EventBus] = None,
        source: str = "dispatcher",
    ):
        self._cfg = config or BatchConfig()
        self._bus = bus if bus is not None else event_bus()
        self._source = source

    @property
    def config(self) -> BatchConfig:
        return self._cfg

    def dispatch(self, queue: DurableQueue, consumer: Consumer) -> int:
        """Drain ``queue`` into ``consumer``. Returns the number of requests committed."""
        consume = as_consumer(consumer)
        entries = iter(queue.drain())
        total = 0
        batches = 0

        while True:
            try:
                first = next(entries)
            except StopIteration:
                break
            except QueueReadError as err:
                # an unreadable first record still counts as a failed batch
                COMMITTER_BATCHES_TOTAL.labels(status="failure").inc()
                logger.error(f"Batch #{batches + 1} failed before its first request: {err}")
                self._fire(CommitterEventName.BATCH_BEGIN)
                self._fire(CommitterEventName.BATCH_ERROR, cause=err)
                raise

            batch = _Batch(first, entries, self._cfg)
            self._fire(CommitterEventName.BATCH_BEGIN)
            t0 = monotonic()
            try:
                consume(batch)
                batch.exhaust()
                queue.acknowledge(batch.entries)
            except Exception as exc:
                COMMITTER_BATCHES_TOTAL.labels(status="failure").inc()
                err = self._batch_error(batch, exc)
                logger.error(
                    f"Batch #{batches + 1} failed after {len(batch.entries)} request(s): "
                    f"{type(exc).__name__}: {exc}"
                )
                self._fire(CommitterEventName.BATCH_ERROR, cause=err)
                if err is exc:
                    raise
                if err is batch.read_error:
                    raise err
                raise err from exc

            size = len(batch.entries)
            batches += 1
            total += size
            COMMITTER_BATCHES_TOTAL.labels(status="success").inc()
            COMMITTER_BATCH_SIZE.observe(size)
            COMMITTER_BATCH_LATENCY_MS.observe((monotonic() - t0) * 1000.0)
            self._fire(CommitterEventName.BATCH_END, batch_size=size)
            logger.debug(f"Batch #{batches} committed ({size} request(s))")

        if batches:
            logger.info(f"{total} request(s) committed in {batches} batch(es)")
        return total

    @staticmethod
    def _batch_error(batch: _Batch, exc: Exception) -> CommitterException:
        if batch.read_error is not None:
            return batch.read_error
        if isinstance(exc, CommitterException):
            return exc
        return SinkError(f"Could not commit batch: {type(exc).__name__}: {exc}")

    def _fire(self, name: CommitterEventName, **kwargs) -> None:
        self._bus.publish(CommitterEvent(name=name, source=self._source, **kwargs))
