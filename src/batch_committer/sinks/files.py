"""
Sinks writing committed requests to local files.

Files are never updated in place: every request is appended as a new
entry, so generated files read as a log of commit instructions. File
names are made of an optional prefix, a timestamp, a sequence number and
an optional suffix. Upserts and deletes can be split into separate
``upsert-*`` / ``delete-*`` files.
"""

from __future__ import annotations

import csv
import gzip
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from loguru import logger

from ..context import CommitterContext
from ..errors import SinkError
from ..models import CommitterRequest, RequestRecord, UpsertRequest
from .base import BaseSink


class _WriterHandler:
    """Owns the file currently written for one request kind, rolling over when full."""

    def __init__(self, sink: "FileSink", base_name: str):
        self._sink = sink
        self._base_name = base_name
        self._seq = 0
        self._count = 0
        self._fh: Optional[TextIO] = None
        self.files: List[Path] = []

    def writer(self) -> TextIO:
        limit = self._sink.docs_per_file
        if self._fh is not None and limit > 0 and self._count >= limit:
            self.close()
        if self._fh is None:
            self._fh = self._open_next()
        self._count += 1
        return self._fh

    def flush(self) -> None:
        if self._fh is not None:
            self._fh.flush()

    def close(self) -> None:
        if self._fh is None:
            return
        self._sink._end_file(self._fh)
        self._fh.close()
        self._fh = None
        self._count = 0

    def _open_next(self) -> TextIO:
        self._seq += 1
        s = self._sink
        name = f"{s.file_name_prefix or ''}{self._base_name}_{self._seq}{s.file_name_suffix or ''}.{s.extension}"
        if s.compress:
            path = s.directory / f"{name}.gz"
            fh = gzip.open(path, "wt", encoding="utf-8", newline="")
        else:
            path = s.directory / name
            fh = open(path, "w", encoding="utf-8", newline="")
        logger.debug(f"Writing committed requests to {path}")
        self.files.append(path)
        s._start_file(fh)
        return fh


class FileSink(BaseSink):
    """Base class for sinks writing to the local file system.

    Args:
        directory: Where files are written (committer work dir when omitted)
        docs_per_file: Max requests per file before rolling over (0 = unlimited)
        compress: Gzip the files
        split_upsert_delete: Write upserts and deletes to separate files
        file_name_prefix / file_name_suffix: Optional file name decorations
    """

    extension = "txt"

    def __init__(
        self,
        directory: Optional[Path] = None,
        docs_per_file: int = 0,
        compress: bool = False,
        split_upsert_delete: bool = False,
        file_name_prefix: Optional[str] = None,
        file_name_suffix: Optional[str] = None,
    ):
        self.directory = Path(directory) if directory is not None else None
        self.docs_per_file = docs_per_file
        self.compress = compress
        self.split_upsert_delete = split_upsert_delete
        self.file_name_prefix = file_name_prefix
        self.file_name_suffix = file_name_suffix
        self._upsert_handler: Optional[_WriterHandler] = None
        self._delete_handler: Optional[_WriterHandler] = None

    @property
    def files(self) -> List[Path]:
        """Every file written so far."""
        handlers = {id(h): h for h in (self._upsert_handler, self._delete_handler) if h is not None}
        return sorted(p for h in handlers.values() for p in h.files)

    def open(self, context: Optional[CommitterContext] = None) -> None:
        if self.directory is None:
            if context is None:
                raise SinkError(f"{self.name} sink needs a directory or a committer context")
            self.directory = context.work_dir
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkError(f"Could not create directory: {self.directory.absolute()}") from e

        base = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        if self.split_upsert_delete:
            self._upsert_handler = _WriterHandler(self, f"upsert-{base}")
            self._delete_handler = _WriterHandler(self, f"delete-{base}")
        else:
            # when using same file for both upsert and delete, share instance.
            self._upsert_handler = _WriterHandler(self, base)
            self._delete_handler = self._upsert_handler

    def write(self, request: CommitterRequest) -> None:
        if self._upsert_handler is None:
            self.open()
        handler = self._upsert_handler if isinstance(request, UpsertRequest) else self._delete_handler
        self._write_request(handler.writer(), request)

    def flush(self) -> None:
        for handler in (self._upsert_handler, self._delete_handler):
            if handler is not None:
                handler.flush()

    def close(self) -> None:
        try:
            if self._upsert_handler is not None:
                self._upsert_handler.close()
            if self._delete_handler is not None and self._delete_handler is not self._upsert_handler:
                self._delete_handler.close()
        except OSError as e:
            raise SinkError("Could not close file writer.") from e

    # --------------------------- hooks

    def _start_file(self, fh: TextIO) -> None:
        pass

    def _end_file(self, fh: TextIO) -> None:
        pass

    def _write_request(self, fh: TextIO, request: CommitterRequest) -> None:
        raise NotImplementedError


class NDJSONFileSink(FileSink):
    """Writes one JSON object per line: ``{"upsert": {...}}`` or ``{"delete": {...}}``."""

    name = "ndjson"
    extension = "ndjson"

    def __init__(self, *args, include_content: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.include_content = include_content

    def _write_request(self, fh: TextIO, request: CommitterRequest) -> None:
        record = RequestRecord.from_request(request, include_content=self.include_content)
        fh.write(json.dumps(record.to_envelope(), ensure_ascii=False))
        fh.write("\n")


DEFAULT_TRUNCATE_AT = 5096


@dataclass(frozen=True)
class Column:
    """CSV column: a metadata ``field`` (blank for the document content)."""

    field: Optional[str] = None
    header: Optional[str] = None
    truncate_at: int = 0  # 0 = sink default, -1 = unlimited


class CSVFileSink(FileSink):
    """Writes requests as CSV rows.

    A leading request type column ("upsert"/"delete") is written unless
    upserts and deletes are split without a ``type_header``. Multi-valued
    fields are joined with ``multi_value_join_delimiter``. Values longer
    than the column (or sink) ``truncate_at`` are truncated.
    """

    name = "csv"
    extension = "csv"

    def __init__(
        self,
        *args,
        columns: Sequence[Column] = (),
        show_headers: bool = False,
        delimiter: str = ",",
        quotechar: str = '"',
        multi_value_join_delimiter: str = "|",
        type_header: Optional[str] = None,
        truncate_at: int = DEFAULT_TRUNCATE_AT,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.columns = list(columns)
        self.show_headers = show_headers
        self.delimiter = delimiter
        self.quotechar = quotechar
        self.multi_value_join_delimiter = multi_value_join_delimiter
        self.type_header = type_header
        self.truncate_at = truncate_at

    @property
    def _with_type(self) -> bool:
        return bool(self.type_header) or not self.split_upsert_delete

    def _csv(self, fh: TextIO):
        return csv.writer(fh, delimiter=self.delimiter, quotechar=self.quotechar, lineterminator="\n")

    def _start_file(self, fh: TextIO) -> None:
        if not self.show_headers:
            return
        row = [self.type_header or "type"] if self._with_type else []
        row.extend(c.header or c.field or "content" for c in self.columns)
        self._csv(fh).writerow(row)

    def _write_request(self, fh: TextIO, request: CommitterRequest) -> None:
        row = [request.operation] if self._with_type else []
        content: Optional[str] = None
        for column in self.columns:
            if not column.field:
                # content column; deletes have none
                if isinstance(request, UpsertRequest):
                    if content is None:
                        content = request.content_as_text() or ""
                    value = content
                else:
                    value = ""
            else:
                value = self.multi_value_join_delimiter.join(request.metadata.get(column.field, []))
            row.append(self._truncate(value, column.truncate_at).strip())
        self._csv(fh).writerow(row)

    def _truncate(self, value: str, column_max: int) -> str:
        limit = column_max or self.truncate_at or DEFAULT_TRUNCATE_AT
        if limit < 0:
            return value
        return value[:limit]
