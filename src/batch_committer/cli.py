from __future__ import annotations

import json
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger

from .committer import BatchCommitter
from .config import CommitterSettings, QueueImplementation
from .context import CommitterContext
from .errors import CommitterException
from .models import RequestRecord
from .queue import FSQueue
from .sinks import Column, CSVFileSink, NDJSONFileSink

app = typer.Typer(help="batch_committer operational CLI (queue inspection and recovery)")


class OutputFormat(str, Enum):
    ndjson = "ndjson"
    csv = "csv"


# ---------------------------
# Common options
# ---------------------------


def work_dir_opt() -> Path:
    return typer.Option(..., "--work-dir", envvar="COMMITTER_WORK_DIR", help="Committer working directory")


def max_per_folder_opt(default=500) -> int:
    return typer.Option(default, "--max-per-folder", help="Queue files per folder the queue was written with")


def _open_queue(work_dir: Path, max_per_folder: int) -> FSQueue:
    queue = FSQueue(work_dir, max_per_folder=max_per_folder)
    queue.init(CommitterContext.create(work_dir))
    return queue


# ---------------------------
# Inspection
# ---------------------------


@app.command("stats")
def stats(work_dir: Path = work_dir_opt(), max_per_folder: int = max_per_folder_opt()):
    """Show how many requests wait in a file-system queue."""
    queue = FSQueue(work_dir, max_per_folder=max_per_folder)
    typer.echo(json.dumps({"work_dir": str(work_dir), "pending": queue.pending_count()}, indent=2))


@app.command("dump")
def dump(
    work_dir: Path = work_dir_opt(),
    content: bool = typer.Option(False, "--content/--no-content", help="Include upsert content"),
    max_per_folder: int = max_per_folder_opt(),
):
    """Print queued requests as NDJSON without consuming them."""
    try:
        queue = _open_queue(work_dir, max_per_folder)
        try:
            for entry in queue.drain():
                record = RequestRecord.from_request(entry.request, include_content=content)
                typer.echo(json.dumps({"position": entry.position, **record.model_dump(exclude_none=True)}))
        finally:
            queue.close()
    except CommitterException as e:
        logger.error(f"Failed to dump queue: {e}")
        sys.exit(1)


# ---------------------------
# Recovery
# ---------------------------


@app.command("replay")
def replay(
    work_dir: Path = work_dir_opt(),
    output: Path = typer.Option(..., "--output", help="Directory receiving the committed files"),
    fmt: OutputFormat = typer.Option(OutputFormat.ndjson, "--format", help="Output file format"),
    column: Optional[List[str]] = typer.Option(
        None, "--column", help="CSV column metadata field (repeatable); 'content' for the document body"
    ),
    max_batch_size: int = typer.Option(20, "--max-batch-size", help="Requests per batch"),
    max_per_folder: int = max_per_folder_opt(),
):
    """Commit the leftovers of an abandoned queue to local files."""
    if fmt is OutputFormat.csv:
        columns = [Column(field=None if c == "content" else c, header=c) for c in (column or ["content"])]
        sink = CSVFileSink(output, columns=columns, show_headers=True)
    else:
        sink = NDJSONFileSink(output)

    settings = CommitterSettings(
        max_batch_size=max_batch_size,
        queue_implementation=QueueImplementation.FS,
        work_dir=work_dir,
        max_per_folder=max_per_folder,
    )
    try:
        committer = BatchCommitter(sink, settings, committer_id="replay")
        pending = 0
        committer.init(CommitterContext.create(work_dir))
        pending = committer.pending_count()
        logger.info(f"Replaying {pending} queued request(s) from {work_dir}")
        committer.close()
    except CommitterException as e:
        logger.error(f"Replay failed: {e}")
        sys.exit(1)

    logger.success(f"Replayed {pending} request(s) into {output}")
    for path in sink.files:
        typer.echo(str(path))


@app.command("clean")
def clean(
    work_dir: Path = work_dir_opt(),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    max_per_folder: int = max_per_folder_opt(),
):
    """Irreversibly discard every queued request."""
    queue = FSQueue(work_dir, max_per_folder=max_per_folder)
    pending = queue.pending_count()
    if not yes:
        typer.confirm(f"Discard {pending} queued request(s) under {work_dir}?", abort=True)
    try:
        queue.clean()
    except CommitterException as e:
        logger.error(f"Failed to clean queue: {e}")
        sys.exit(1)
    logger.success(f"Discarded {pending} queued request(s)")


if __name__ == "__main__":
    app()
