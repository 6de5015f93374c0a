"""Durable queue strategies and the factory selecting one from settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import CommitterSettings, QueueImplementation
from .base import DurableQueue
from .fs import DEFAULT_MAX_PER_FOLDER, FSQueue
from .memory import MemoryQueue


def create_queue(
    settings: Optional[CommitterSettings] = None,
    work_dir: Optional[Path] = None,
) -> DurableQueue:
    """Build the queue named by ``settings.queue_implementation``."""
    settings = settings or CommitterSettings()
    impl = QueueImplementation(settings.queue_implementation)
    if impl is QueueImplementation.MEMORY:
        return MemoryQueue()
    return FSQueue(work_dir or settings.work_dir, max_per_folder=settings.max_per_folder)


__all__ = [
    "DurableQueue",
    "FSQueue",
    "MemoryQueue",
    "DEFAULT_MAX_PER_FOLDER",
    "create_queue",
]
