"""
Unit tests for BatchDispatcher.
"""

from typing import List

import pytest
from factories import delete, event_names, upsert

from batch_committer import (
    BatchConfig,
    BatchDispatcher,
    CommitterEventName,
    MemoryQueue,
    QueueReadError,
    SinkError,
)


@pytest.fixture
def queue():
    q = MemoryQueue()
    q.init()
    return q


def fill(queue, n: int):
    for i in range(n):
        queue.enqueue(upsert(f"doc-{i}"))


class Recorder:
    """Consumer keeping the references of every batch it received."""

    def __init__(self, fail_on: int = None):
        self.batches: List[List[str]] = []
        self.fail_on = fail_on

    def __call__(self, batch):
        refs = [r.reference for r in batch]
        self.batches.append(refs)
        if self.fail_on is not None and len(self.batches) == self.fail_on:
            raise RuntimeError("sink down")


def test_batch_config_validation():
    with pytest.raises(ValueError):
        BatchConfig(max_batch_size=0)


@pytest.mark.parametrize("n,m,sizes", [(5, 2, [2, 2, 1]), (4, 2, [2, 2]), (3, 10, [3]), (1, 1, [1])])
def test_batches_are_bounded_and_ordered(queue, bus, n, m, sizes):
    fill(queue, n)
    consumer = Recorder()

    committed = BatchDispatcher(BatchConfig(max_batch_size=m), bus=bus).dispatch(queue, consumer)

    assert committed == n
    assert [len(b) for b in consumer.batches] == sizes
    assert [r for b in consumer.batches for r in b] == [f"doc-{i}" for i in range(n)]
    assert queue.pending_count() == 0


def test_events_bracket_each_batch(queue, bus, recorded):
    fill(queue, 3)

    BatchDispatcher(BatchConfig(max_batch_size=2), bus=bus, source="d1").dispatch(queue, Recorder())

    assert event_names(recorded) == ["BATCH_BEGIN", "BATCH_END", "BATCH_BEGIN", "BATCH_END"]
    assert [e.batch_size for e in recorded if e.name is CommitterEventName.BATCH_END] == [2, 1]
    assert {e.source for e in recorded} == {"d1"}


def test_empty_queue_dispatches_nothing(queue, bus, recorded):
    consumer = Recorder()

    assert BatchDispatcher(bus=bus).dispatch(queue, consumer) == 0
    assert consumer.batches == []
    assert recorded == []


def test_consumer_object_with_consume_method(queue, bus):
    fill(queue, 3)
    received = []

    class Sink:
        def consume(self, batch):
            received.append(list(batch))

    BatchDispatcher(BatchConfig(max_batch_size=3), bus=bus).dispatch(queue, Sink())
    assert len(received) == 1


def test_non_consumer_rejected(queue, bus):
    with pytest.raises(TypeError):
        BatchDispatcher(bus=bus).dispatch(queue, object())


def test_unread_entries_still_belong_to_the_batch(queue, bus, recorded):
    fill(queue, 5)
    firsts = []

    def lazy(batch):
        firsts.append(next(batch).reference)

    assert BatchDispatcher(BatchConfig(max_batch_size=2), bus=bus).dispatch(queue, lazy) == 5

    assert firsts == ["doc-0", "doc-2", "doc-4"]
    assert queue.pending_count() == 0
    assert [e.batch_size for e in recorded if e.name is CommitterEventName.BATCH_END] == [2, 2, 1]


def test_deletes_not_counted_when_disabled(queue, bus):
    queue.enqueue(upsert("u1"))
    queue.enqueue(delete("d1"))
    queue.enqueue(delete("d2"))
    queue.enqueue(upsert("u2"))
    queue.enqueue(upsert("u3"))
    consumer = Recorder()

    BatchDispatcher(BatchConfig(max_batch_size=2, count_deletes=False), bus=bus).dispatch(queue, consumer)

    assert consumer.batches == [["u1", "d1", "d2", "u2"], ["u3"]]


def test_failure_stops_dispatch(queue, bus, recorded):
    fill(queue, 5)
    consumer = Recorder(fail_on=2)

    with pytest.raises(SinkError) as exc_info:
        BatchDispatcher(BatchConfig(max_batch_size=2), bus=bus).dispatch(queue, consumer)

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert len(consumer.batches) == 2
    assert event_names(recorded) == ["BATCH_BEGIN", "BATCH_END", "BATCH_BEGIN", "BATCH_ERROR"]
    errors = [e for e in recorded if e.is_error]
    assert len(errors) == 1
    assert errors[0].cause is exc_info.value

    # first batch committed, the failed one and the rest stay queued
    assert queue.pending_count() == 3
    assert [e.reference for e in _reopen(queue).drain()] == ["doc-2", "doc-3", "doc-4"]


def test_read_error_raised_as_is(bus, recorded):
    boom = QueueReadError("corrupt")

    class BrokenQueue(MemoryQueue):
        def drain(self):
            yield from list(super().drain())[:1]
            raise boom

    q = BrokenQueue()
    q.init()
    fill(q, 3)

    with pytest.raises(QueueReadError) as exc_info:
        BatchDispatcher(BatchConfig(max_batch_size=5), bus=bus).dispatch(q, Recorder())

    assert exc_info.value is boom
    assert event_names(recorded) == ["BATCH_BEGIN", "BATCH_ERROR"]
    assert recorded[-1].cause is boom
    assert q.pending_count() == 3


def _reopen(queue):
    queue.close()
    queue.init()
    return queue


def test_unreadable_first_entry_fails_the_batch(bus, recorded):
    boom = QueueReadError("corrupt")

    class BrokenQueue(MemoryQueue):
        def drain(self):
            raise boom
            yield  # pragma: no cover

    q = BrokenQueue()
    q.init()
    fill(q, 2)
    consumer = Recorder()

    with pytest.raises(QueueReadError) as exc_info:
        BatchDispatcher(bus=bus).dispatch(q, consumer)

    assert exc_info.value is boom
    assert consumer.batches == []
    assert event_names(recorded) == ["BATCH_BEGIN", "BATCH_ERROR"]
    assert recorded[-1].cause is boom
    assert q.pending_count() == 2
