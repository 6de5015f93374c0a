from __future__ import annotations

import tempfile
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from .events import EventBus, event_bus


def _default_work_dir() -> Path:
    return Path(tempfile.gettempdir()) / f"committer-{time.time_ns()}"


@dataclass(frozen=True)
class CommitterContext:
    """Data defined outside a committer but needed while it runs.

    Attributes:
        work_dir: Root directory for queue storage (fresh temp dir if not given)
        bus: Event bus receiving the committer events (process singleton if not given)
    """

    work_dir: Path = field(default_factory=_default_work_dir)
    bus: EventBus = field(default_factory=event_bus)

    @classmethod
    def create(cls, work_dir: Optional[Path] = None, bus: Optional[EventBus] = None) -> "CommitterContext":
        return cls(
            work_dir=Path(work_dir) if work_dir is not None else _default_work_dir(),
            bus=bus if bus is not None else event_bus(),
        )

    def with_work_dir(self, work_dir: Path) -> "CommitterContext":
        return replace(self, work_dir=Path(work_dir))

    def with_bus(self, bus: EventBus) -> "CommitterContext":
        return replace(self, bus=bus)
