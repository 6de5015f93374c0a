from __future__ import annotations

import re
from typing import Optional

from loguru import logger

from ..models import CommitterRequest, UpsertRequest
from .base import BaseSink


class LogSink(BaseSink):
    """Logs every committed request. Useful for troubleshooting pipelines."""

    name = "log"

    def __init__(
        self,
        level: str = "INFO",
        ignore_content: bool = True,
        field_pattern: Optional[str] = None,
    ):
        self.level = level.upper()
        self.ignore_content = ignore_content
        self._field_re = re.compile(field_pattern) if field_pattern else None
        self.upsert_count = 0
        self.delete_count = 0

    def write(self, request: CommitterRequest) -> None:
        lines = [f"=== {request.operation.upper()} {request.reference}"]
        for name, values in request.metadata.items():
            if self._field_re is None or self._field_re.fullmatch(name):
                lines.append(f"  {name}: {' | '.join(values)}")
        if isinstance(request, UpsertRequest):
            self.upsert_count += 1
            if not self.ignore_content and request.content is not None:
                lines.append(f"  CONTENT: {request.content_as_text()}")
        else:
            self.delete_count += 1
        logger.log(self.level, "\n".join(lines))

    def close(self) -> None:
        logger.log(self.level, f"{self.upsert_count} upserts and {self.delete_count} deletions logged.")
