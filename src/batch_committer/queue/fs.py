"""
File-system backed durable queue.

Layout:
    <work_dir>/queue/<folder>/<position>-<upsert|delete>.zip

``folder`` is ``position // max_per_folder`` so no folder holds more than
``max_per_folder`` requests. Records are written to a ``.tmp`` file,
fsynced, then renamed into place and the folder fsynced; a crash mid-write
leaves no partial record visible.

Reading never relies on ``max_per_folder``: files are ordered by the
position in their name, and committed files are deleted at the path they
were read from, so a queue reopened with another folder size still drains
and acknowledges everything written before.
"""

from __future__ import annotations

import os
import re
import shutil
import threading
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from loguru import logger

from ..context import CommitterContext
from ..errors import InitializationError, QueueReadError, QueueWriteError
from ..models import CommitterRequest, QueueEntry
from . import codec

DEFAULT_MAX_PER_FOLDER = 500

_FILE_RE = re.compile(r"^(\d{20})-(upsert|delete)\.zip$")
_FOLDER_RE = re.compile(r"^\d{10}$")


class FSQueue:
    """Durable queue storing one zip file per request."""

    def __init__(self, work_dir: Optional[Path] = None, max_per_folder: int = DEFAULT_MAX_PER_FOLDER):
        if max_per_folder <= 1:
            raise ValueError("max_per_folder must be > 1")
        self._work_dir = Path(work_dir) if work_dir is not None else None
        self._max_per_folder = max_per_folder
        self._lock = threading.Lock()
        self._next_position = 0
        self._cursor = -1
        self._drained: Dict[int, Path] = {}
        self._open = False

    # --------------------------- properties

    @property
    def work_dir(self) -> Optional[Path]:
        return self._work_dir

    @property
    def queue_dir(self) -> Optional[Path]:
        return self._work_dir / "queue" if self._work_dir is not None else None

    @property
    def is_open(self) -> bool:
        return self._open

    # --------------------------- lifecycle

    def init(self, context: Optional[CommitterContext] = None) -> None:
        if context is not None:
            self._work_dir = Path(context.work_dir)
        if self._work_dir is None:
            raise InitializationError("No working directory given for the file-system queue")

        queue_dir = self.queue_dir
        logger.info(f"Initializing file-system committer queue at {queue_dir.absolute()}")
        try:
            queue_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InitializationError(f"Could not create committer queue directory: {queue_dir.absolute()}") from e
        if not os.access(queue_dir, os.W_OK | os.X_OK):
            raise InitializationError(f"Committer queue directory is not writable: {queue_dir.absolute()}")

        try:
            self._discard_partial_writes()
            files = self._list_files()
        except OSError as e:
            raise InitializationError(f"Could not read committer queue directory: {queue_dir.absolute()}") from e
        # Record contents are only checked when drained (QueueReadError);
        # here only the layout itself is validated.
        for (prev, prev_path), (position, path) in zip(files, files[1:]):
            if prev == position:
                raise InitializationError(
                    f"Committer queue is corrupt: {prev_path.name} and {path.name} share position {position}"
                )

        with self._lock:
            self._next_position = files[-1][0] + 1 if files else 0
            self._cursor = -1
            self._drained.clear()
            self._open = True

        pending = self.pending_count()
        if pending:
            logger.info(f"Committer queue holds {pending} leftover request(s) from a previous run")
        logger.info("File-system committer queue initialized.")

    def close(self) -> None:
        if self._open:
            logger.debug(f"Closing file-system committer queue at {self.queue_dir}")
        self._open = False

    def clean(self) -> None:
        if self._work_dir is None:
            logger.error("Queue directory not found. Nothing to clean.")
            return
        queue_dir = self.queue_dir
        with self._lock:
            try:
                if queue_dir.exists():
                    shutil.rmtree(queue_dir)
                # Leave the working directory only if something else lives in it
                if self._work_dir.exists() and not any(self._work_dir.iterdir()):
                    self._work_dir.rmdir()
                if self._open:
                    queue_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise QueueWriteError(f"Could not clean queue directory located at {queue_dir.absolute()}") from e
            self._next_position = 0
            self._cursor = -1
            self._drained.clear()
        logger.info(f"Committer queue cleaned: {queue_dir.absolute()}")

    # --------------------------- queue operations

    def enqueue(self, request: CommitterRequest) -> QueueEntry:
        with self._lock:
            if not self._open:
                raise QueueWriteError(f"Queue is not open, cannot queue {request.reference}")
            position = self._next_position
            target = self._entry_path(position, request.operation)
            tmp = target.with_name(target.name + codec.TMP_EXT)
            try:
                new_folder = not target.parent.exists()
                target.parent.mkdir(parents=True, exist_ok=True)
                codec.write_request(request, tmp)
                os.replace(tmp, target)
                _fsync_dir(target.parent)
                if new_folder:
                    _fsync_dir(self.queue_dir)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise QueueWriteError(
                    f"Could not queue request for {request.reference} at {target.absolute()}"
                ) from e
            self._next_position = position + 1

        logger.debug(f"Queued {request.operation} #{position} for {request.reference}")
        return QueueEntry(position, request)

    def drain(self) -> Iterator[QueueEntry]:
        if self.queue_dir is None or not self.queue_dir.exists():
            return
        for position, path in self._list_files():
            if position <= self._cursor:
                continue
            try:
                request = codec.read_request(path)
            except (OSError, zipfile.BadZipFile, KeyError, ValueError) as e:
                raise QueueReadError(f"Could not read queued request file {path.absolute()}") from e
            self._cursor = position
            self._drained[position] = path
            yield QueueEntry(position, request)

    def acknowledge(self, entries: Iterable[QueueEntry]) -> None:
        """Delete committed entries.

        Raises:
            QueueWriteError: an entry has no file left, or it could not be deleted
        """
        folders = set()
        for entry in entries:
            path = self._drained.pop(entry.position, None) or self._locate(entry)
            if path is None:
                raise QueueWriteError(f"No queued request file found for #{entry.position} ({entry.reference})")
            try:
                path.unlink()
            except OSError as e:
                raise QueueWriteError(f"Could not delete committed request file {path.absolute()}") from e
            folders.add(path.parent)
        for folder in folders:
            try:
                folder.rmdir()
            except OSError:
                # not empty yet
                pass

    def pending_count(self) -> int:
        if self.queue_dir is None or not self.queue_dir.exists():
            return 0
        return len(self._list_files())

    # --------------------------- internals

    def _entry_path(self, position: int, operation: str) -> Path:
        folder = f"{position // self._max_per_folder:010d}"
        return self.queue_dir / folder / f"{position:020d}-{operation}{codec.EXT}"

    def _locate(self, entry: QueueEntry) -> Optional[Path]:
        """Path of an entry this instance did not drain itself."""
        path = self._entry_path(entry.position, entry.request.operation)
        if path.exists():
            return path
        name = path.name
        for folder in self._iter_folders():
            if (folder / name).exists():
                return folder / name
        return None

    def _iter_folders(self) -> Iterator[Path]:
        for folder in sorted(self.queue_dir.iterdir()):
            if folder.is_dir() and _FOLDER_RE.match(folder.name):
                yield folder

    def _list_files(self) -> List[Tuple[int, Path]]:
        """Queued files sorted by position, whatever folder they sit in."""
        files = []
        for folder in self._iter_folders():
            for path in folder.iterdir():
                match = _FILE_RE.match(path.name)
                if match:
                    files.append((int(match.group(1)), path))
        files.sort(key=lambda f: f[0])
        return files

    def _discard_partial_writes(self) -> None:
        for folder in self._iter_folders():
            for tmp in folder.glob(f"*{codec.TMP_EXT}"):
                logger.warning(f"Discarding incomplete queue record: {tmp}")
                tmp.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"FSQueue(work_dir={self._work_dir!s}, max_per_folder={self._max_per_folder})"


def _fsync_dir(path: Path) -> None:
    """Flush a directory entry so a rename inside it survives a crash."""
    if os.name != "posix":
        # directories cannot be opened for fsync on Windows
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
