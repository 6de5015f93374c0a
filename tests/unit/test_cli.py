"""
Unit tests for the operational CLI.
"""

import json

import pytest
from factories import delete, upsert
from typer.testing import CliRunner

from batch_committer import FSQueue
from batch_committer.cli import app

runner = CliRunner()


@pytest.fixture
def leftovers(context, work_dir):
    """Work dir holding three requests abandoned by a crashed committer."""
    q = FSQueue()
    q.init(context)
    q.enqueue(upsert("doc-1", "body one", title="One"))
    q.enqueue(delete("doc-2"))
    q.enqueue(upsert("doc-3", "body three", title="Three"))
    q.close()
    return work_dir


def test_stats(leftovers):
    result = runner.invoke(app, ["stats", "--work-dir", str(leftovers)])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["pending"] == 3


def test_dump_leaves_queue_untouched(leftovers):
    result = runner.invoke(app, ["dump", "--work-dir", str(leftovers), "--content"])

    assert result.exit_code == 0
    lines = [json.loads(line) for line in result.stdout.splitlines()]
    assert [line["reference"] for line in lines] == ["doc-1", "doc-2", "doc-3"]
    assert lines[0]["content"] == "body one"
    assert lines[1]["operation"] == "delete"
    assert FSQueue(leftovers).pending_count() == 3


def test_replay_ndjson(leftovers, tmp_path):
    out = tmp_path / "out"
    result = runner.invoke(
        app, ["replay", "--work-dir", str(leftovers), "--output", str(out), "--max-batch-size", "2"]
    )

    assert result.exit_code == 0
    [path] = out.glob("*.ndjson")
    refs = [next(iter(json.loads(line).values()))["reference"] for line in path.read_text().splitlines()]
    assert refs == ["doc-1", "doc-2", "doc-3"]
    assert FSQueue(leftovers).pending_count() == 0


def test_replay_csv(leftovers, tmp_path):
    out = tmp_path / "out"
    result = runner.invoke(
        app,
        ["replay", "--work-dir", str(leftovers), "--output", str(out), "--format", "csv", "--column", "title"],
    )

    assert result.exit_code == 0
    [path] = out.glob("*.csv")
    assert path.read_text().splitlines() == ["type,title", "upsert,One", "delete,", "upsert,Three"]


def test_clean_requires_confirmation(leftovers):
    result = runner.invoke(app, ["clean", "--work-dir", str(leftovers)], input="n\n")

    assert result.exit_code != 0
    assert FSQueue(leftovers).pending_count() == 3


def test_clean(leftovers):
    result = runner.invoke(app, ["clean", "--work-dir", str(leftovers), "--yes"])

    assert result.exit_code == 0
    assert FSQueue(leftovers).pending_count() == 0
