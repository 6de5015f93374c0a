from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from ..context import CommitterContext
from ..errors import CommitterException, SinkError
from ..metrics import SINK_WRITES_TOTAL
from ..models import CommitterRequest


class BaseSink(ABC):
    """Base for reference sinks: writes a batch one request at a time.

    Subclasses implement ``write``; ``flush`` runs once per batch. Failures
    are raised as SinkError so the committer reports them as batch errors.
    """

    name: str = "sink"

    def open(self, context: Optional[CommitterContext] = None) -> None:
        """Called when the committer initializes."""

    def consume(self, batch: Iterator[CommitterRequest]) -> None:
        for request in batch:
            try:
                self.write(request)
            except CommitterException:
                SINK_WRITES_TOTAL.labels(sink=self.name, status="failure").inc()
                raise
            except Exception as exc:
                SINK_WRITES_TOTAL.labels(sink=self.name, status="failure").inc()
                raise SinkError(
                    f"{self.name} sink could not write {request.operation} for {request.reference}"
                ) from exc
            SINK_WRITES_TOTAL.labels(sink=self.name, status="success").inc()
        self.flush()

    @abstractmethod
    def write(self, request: CommitterRequest) -> None:
        """Write one request."""

    def flush(self) -> None:
        """Called after every batch."""

    def close(self) -> None:
        """Called when the committer closes; must be safe to call repeatedly."""
