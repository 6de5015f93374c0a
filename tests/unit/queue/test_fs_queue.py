"""
Unit tests for the file-system queue.
"""

import pytest
from factories import delete, upsert

from batch_committer import (
    DurableQueue,
    FSQueue,
    InitializationError,
    QueueReadError,
    QueueWriteError,
    UpsertRequest,
)
from batch_committer.queue import fs


@pytest.fixture
def queue(context):
    q = FSQueue()
    q.init(context)
    yield q
    q.close()


def reopen(queue, context):
    queue.close()
    fresh = FSQueue(max_per_folder=queue._max_per_folder)
    fresh.init(context)
    return fresh


def test_satisfies_protocol():
    assert isinstance(FSQueue(), DurableQueue)


def test_max_per_folder_validation():
    with pytest.raises(ValueError):
        FSQueue(max_per_folder=1)


def test_enqueue_then_drain_in_order(queue):
    queue.enqueue(upsert("a", "content-a", title="A"))
    queue.enqueue(delete("b"))
    queue.enqueue(upsert("c"))

    entries = list(queue.drain())

    assert [e.reference for e in entries] == ["a", "b", "c"]
    assert [e.position for e in entries] == [0, 1, 2]
    first = entries[0].request
    assert isinstance(first, UpsertRequest)
    assert first.metadata == {"title": ("A",)}
    assert first.content_as_text() == "content-a"
    assert entries[2].request.content is None


def test_entries_drained_once_per_session(queue):
    queue.enqueue(upsert("a"))
    assert len(list(queue.drain())) == 1
    assert list(queue.drain()) == []

    queue.enqueue(upsert("b"))
    assert [e.reference for e in queue.drain()] == ["b"]


def test_acknowledge_removes_files(queue):
    queue.enqueue(upsert("a"))
    queue.enqueue(upsert("b"))
    entries = list(queue.drain())

    queue.acknowledge(entries[:1])

    assert queue.pending_count() == 1


def test_unacknowledged_entries_survive_reopen(queue, context):
    for ref in ("a", "b", "c"):
        queue.enqueue(upsert(ref, f"body-{ref}"))
    entries = list(queue.drain())
    queue.acknowledge(entries[:1])

    fresh = reopen(queue, context)

    assert fresh.pending_count() == 2
    drained = list(fresh.drain())
    assert [e.reference for e in drained] == ["b", "c"]
    assert drained[1].request.content_as_text() == "body-c"


def test_positions_resume_after_reopen(queue, context):
    queue.enqueue(upsert("a"))
    queue.enqueue(upsert("b"))

    fresh = reopen(queue, context)
    entry = fresh.enqueue(upsert("c"))

    assert entry.position == 2
    assert [e.reference for e in fresh.drain()] == ["a", "b", "c"]


def test_partial_writes_discarded_on_init(queue, context):
    queue.enqueue(upsert("a"))
    folder = next(queue.queue_dir.iterdir())
    (folder / "00000000000000000001-upsert.zip.tmp").write_bytes(b"half written")

    fresh = reopen(queue, context)

    assert not list(folder.glob("*.tmp"))
    assert [e.reference for e in fresh.drain()] == ["a"]


def test_corrupt_file_raises_read_error(queue):
    entry = queue.enqueue(upsert("a"))
    path = queue._entry_path(entry.position, "upsert")
    path.write_bytes(b"not a zip")

    with pytest.raises(QueueReadError):
        list(queue.drain())


def test_max_per_folder_spreads_files(context):
    q = FSQueue(max_per_folder=2)
    q.init(context)
    for i in range(5):
        q.enqueue(upsert(f"doc-{i}"))

    folders = sorted(p.name for p in q.queue_dir.iterdir())
    assert folders == ["0000000000", "0000000001", "0000000002"]
    assert [e.reference for e in q.drain()] == [f"doc-{i}" for i in range(5)]


def test_acknowledged_folders_removed(context):
    q = FSQueue(max_per_folder=2)
    q.init(context)
    for i in range(3):
        q.enqueue(upsert(f"doc-{i}"))

    q.acknowledge(list(q.drain())[:2])

    assert [p.name for p in q.queue_dir.iterdir()] == ["0000000001"]


def test_clean_removes_everything(queue, work_dir):
    queue.enqueue(upsert("a"))
    queue.close()

    queue.clean()

    assert not work_dir.exists()
    assert queue.pending_count() == 0


def test_clean_keeps_shared_work_dir(queue, work_dir):
    queue.enqueue(upsert("a"))
    (work_dir / "other.txt").write_text("keep me")

    queue.clean()

    assert (work_dir / "other.txt").exists()
    assert not list(queue.drain())


def test_clean_while_open_allows_new_requests(queue):
    queue.enqueue(upsert("a"))
    queue.clean()

    entry = queue.enqueue(upsert("b"))

    assert entry.position == 0
    assert [e.reference for e in queue.drain()] == ["b"]


def test_enqueue_requires_init(work_dir):
    with pytest.raises(QueueWriteError):
        FSQueue(work_dir).enqueue(upsert("a"))


def test_init_without_work_dir_fails():
    with pytest.raises(InitializationError):
        FSQueue().init()


def test_init_on_file_path_fails(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(InitializationError):
        FSQueue(blocker).init()


def test_pending_count_without_init(queue, work_dir):
    queue.enqueue(upsert("a"))
    assert FSQueue(work_dir).pending_count() == 1
    assert FSQueue(work_dir / "missing").pending_count() == 0


@pytest.mark.parametrize("written,read", [(500, 10), (2, 500), (3, 2)])
def test_reopen_with_other_folder_size(context, written, read):
    q = FSQueue(max_per_folder=written)
    q.init(context)
    for i in range(15):
        q.enqueue(upsert(f"doc-{i}"))
    q.close()

    fresh = FSQueue(max_per_folder=read)
    fresh.init(context)
    entries = list(fresh.drain())
    fresh.acknowledge(entries)

    assert [e.reference for e in entries] == [f"doc-{i}" for i in range(15)]
    assert fresh.pending_count() == 0
    assert list(fresh.queue_dir.iterdir()) == []
    assert fresh.enqueue(upsert("next")).position == 15


def test_acknowledge_entry_from_another_instance(queue, context):
    for i in range(10):
        queue.enqueue(upsert(f"doc-{i}"))
    entry = list(queue.drain())[-1]
    queue.close()

    other = FSQueue(max_per_folder=7)
    other.init(context)
    other.acknowledge([entry])

    assert other.pending_count() == 9


def test_acknowledge_missing_file_fails(queue):
    entry = queue.enqueue(upsert("a"))
    queue.acknowledge([entry])

    with pytest.raises(QueueWriteError):
        queue.acknowledge([entry])


def test_enqueue_syncs_folders(queue, monkeypatch):
    synced = []
    monkeypatch.setattr(fs, "_fsync_dir", synced.append)

    first = queue.enqueue(upsert("a"))
    queue.enqueue(upsert("b"))

    folder = queue._entry_path(first.position, "upsert").parent
    assert synced == [folder, queue.queue_dir, folder]


def test_duplicate_position_fails_init(queue, context):
    entry = queue.enqueue(upsert("a"))
    path = queue._entry_path(entry.position, "upsert")
    (path.parent / path.name.replace("upsert", "delete")).write_bytes(path.read_bytes())
    queue.close()

    with pytest.raises(InitializationError):
        FSQueue().init(context)
