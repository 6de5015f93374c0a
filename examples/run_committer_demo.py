"""
Demo script for BatchCommitter.

Shows lifecycle events, bounded batches, and recovery of requests left
behind by a committer that never closed.
"""

import io
import tempfile
from pathlib import Path
from typing import Iterator

from loguru import logger

from batch_committer import (
    BatchCommitter,
    CommitterContext,
    CommitterEvent,
    CommitterEventName,
    CommitterRequest,
    CommitterSettings,
    UpsertRequest,
    event_bus,
)


class PrintSink:
    """Simple sink that logs batches."""

    def consume(self, batch: Iterator[CommitterRequest]) -> None:
        refs = [r.reference for r in batch]
        logger.info(f"PrintSink wrote batch of {len(refs)} (first={refs[0] if refs else None})")


def on_event(event: CommitterEvent):
    if event.name is CommitterEventName.BATCH_END:
        logger.info(f"✅ Batch committed ({event.batch_size} requests)")
    elif event.name is CommitterEventName.BATCH_ERROR:
        logger.warning(f"⚠️  Batch failed: {event.cause}")


def produce(committer: BatchCommitter, start: int, count: int):
    for i in range(start, start + count):
        committer.upsert(
            UpsertRequest(
                f"https://example.com/doc/{i}",
                {"title": f"Document {i}"},
                io.BytesIO(f"body {i}".encode()),
            )
        )


def main():
    event_bus().subscribe(on_event)
    work_dir = Path(tempfile.mkdtemp(prefix="committer-demo-"))
    context = CommitterContext.create(work_dir)
    settings = CommitterSettings(max_batch_size=25, work_dir=work_dir)

    logger.info("🚀 First run: queue 60 requests, then 'crash' without closing")
    crashed = BatchCommitter(PrintSink(), settings, context=context, committer_id="first-run")
    crashed.init()
    produce(crashed, 0, 60)
    logger.info(f"Pending on disk: {crashed.pending_count()}")

    logger.info("🔁 Second run: leftovers are committed along with new requests")
    with BatchCommitter(PrintSink(), settings, context=context, committer_id="second-run") as committer:
        logger.info(f"Recovered {committer.pending_count()} queued requests")
        produce(committer, 60, 15)

    logger.info("✅ Committer demo complete")


if __name__ == "__main__":
    main()
