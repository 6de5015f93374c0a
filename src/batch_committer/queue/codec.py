"""
Request <-> zip file conversion for the file-system queue.

Each request is one zip archive with the entries ``operation``,
``reference``, ``metadata`` (JSON object of string lists) and, for upserts
with a payload, ``content``.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import zipfile
from pathlib import Path

from ..models import CommitterRequest, DeleteRequest, UpsertRequest

EXT = ".zip"
TMP_EXT = ".tmp"

# Content above this size is spooled to disk when read back
SPOOL_MAX_BYTES = 1_048_576


def write_request(request: CommitterRequest, target: Path) -> None:
    """Write ``request`` to ``target`` and fsync it before returning."""
    with open(target, "wb") as fh:
        with zipfile.ZipFile(fh, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("operation", request.operation)
            zf.writestr("reference", request.reference.encode("utf-8"))
            zf.writestr("metadata", json.dumps(dict(request.metadata), ensure_ascii=False))
            if isinstance(request, UpsertRequest) and request.content is not None:
                with zf.open("content", "w") as dst:
                    shutil.copyfileobj(request.content, dst)
        fh.flush()
        os.fsync(fh.fileno())


def read_request(source: Path) -> CommitterRequest:
    """Load a request previously written with ``write_request``.

    Raises:
        OSError, zipfile.BadZipFile, KeyError, ValueError: unreadable archive
    """
    with zipfile.ZipFile(source, "r") as zf:
        operation = zf.read("operation").decode("utf-8")
        reference = zf.read("reference").decode("utf-8")
        metadata = json.loads(zf.read("metadata").decode("utf-8"))
        if not isinstance(metadata, dict):
            raise ValueError(f"metadata is not an object in {source}")

        if operation == "delete":
            return DeleteRequest(reference, metadata)
        if operation != "upsert":
            raise ValueError(f"unknown operation {operation!r} in {source}")

        content = None
        if "content" in zf.namelist():
            content = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
            with zf.open("content") as src:
                shutil.copyfileobj(src, content)
            content.seek(0)
        return UpsertRequest(reference, metadata, content)
