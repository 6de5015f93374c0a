from __future__ import annotations

import io
import re
from typing import Iterator, List, Optional

from loguru import logger

from ..models import CommitterRequest, DeleteRequest, UpsertRequest
from .base import BaseSink


class MemorySink(BaseSink):
    """Keeps every committed request in memory.

    Not intended for production use: handy for tests and troubleshooting.
    Upsert content is copied to an in-memory buffer unless ``ignore_content``
    is set. ``field_pattern`` (regex, full match) restricts which metadata
    fields are kept.
    """

    name = "memory"

    def __init__(self, ignore_content: bool = False, field_pattern: Optional[str] = None):
        self.ignore_content = ignore_content
        self._field_re = re.compile(field_pattern) if field_pattern else None
        self.requests: List[CommitterRequest] = []
        self.batches: List[int] = []
        self.upsert_count = 0
        self.delete_count = 0

    def consume(self, batch: Iterator[CommitterRequest]) -> None:
        before = len(self.requests)
        super().consume(batch)
        self.batches.append(len(self.requests) - before)

    def write(self, request: CommitterRequest) -> None:
        logger.debug(f"Committing {request.operation} request for {request.reference}")
        metadata = self._filtered(request)
        if isinstance(request, UpsertRequest):
            content = None
            if not self.ignore_content and request.content is not None:
                content = io.BytesIO(request.read_content())
            self.requests.append(UpsertRequest(request.reference, metadata, content))
            self.upsert_count += 1
        else:
            self.requests.append(DeleteRequest(request.reference, metadata))
            self.delete_count += 1

    def close(self) -> None:
        logger.info(f"{self.upsert_count} upserts committed.")
        logger.info(f"{self.delete_count} deletions committed.")

    @property
    def request_count(self) -> int:
        return len(self.requests)

    @property
    def references(self) -> List[str]:
        return [r.reference for r in self.requests]

    @property
    def upsert_requests(self) -> List[UpsertRequest]:
        return [r for r in self.requests if isinstance(r, UpsertRequest)]

    @property
    def delete_requests(self) -> List[DeleteRequest]:
        return [r for r in self.requests if isinstance(r, DeleteRequest)]

    def _filtered(self, request: CommitterRequest) -> dict:
        if self._field_re is None:
            return dict(request.metadata)
        return {k: v for k, v in request.metadata.items() if self._field_re.fullmatch(k)}
