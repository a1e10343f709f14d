"""Versioned timetable storage with optimistic concurrency.

``save`` succeeds only when ``expected_version`` equals the stored version (0 for
a timetable that does not exist yet) and stores the document as version + 1.
"""

from __future__ import annotations

import fcntl
import logging
import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from studyplanner.errors import ConflictError, TimetableNotFound, ValidationError
from studyplanner.io import read_json, write_json_atomic
from studyplanner.models import TimetableDocument

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class ScheduleStore(Protocol):
    def load(self, timetable_id: str) -> TimetableDocument: ...

    def save(self, document: TimetableDocument, expected_version: int) -> TimetableDocument: ...


def _check_version(timetable_id: str, stored: int, expected: int) -> None:
    if stored != expected:
        logger.warning("Version conflict on %s: stored %d, expected %d", timetable_id, stored, expected)
        raise ConflictError(
            f"Timetable {timetable_id} is at version {stored}, not {expected}; re-read and retry"
        )


class InMemoryScheduleStore:
    def __init__(self) -> None:
        self._documents: dict[str, TimetableDocument] = {}
        self._lock = threading.Lock()

    def load(self, timetable_id: str) -> TimetableDocument:
        with self._lock:
            document = self._documents.get(timetable_id)
        if document is None:
            raise TimetableNotFound(f"Unknown timetable {timetable_id}")
        return document.model_copy(deep=True)

    def save(self, document: TimetableDocument, expected_version: int) -> TimetableDocument:
        with self._lock:
            current = self._documents.get(document.timetable_id)
            _check_version(document.timetable_id, current.version if current else 0, expected_version)
            stored = document.model_copy(update={"version": expected_version + 1}, deep=True)
            self._documents[document.timetable_id] = stored
        return stored.model_copy(deep=True)


class JsonFileScheduleStore:
    """One JSON file per timetable under ``root``.

    Saves hold an exclusive ``flock`` on ``<id>.lock`` for the whole
    read-check-replace, so separate processes sharing ``root`` serialize.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, timetable_id: str) -> Path:
        if not _ID_PATTERN.match(timetable_id) or timetable_id.startswith("."):
            raise ValidationError.single(
                code="INVALID_TIMETABLE_ID",
                message=f"Timetable id {timetable_id!r} is not a safe file name",
                field_path="$.timetable_id",
            )
        return self.root / f"{timetable_id}.json"

    @contextmanager
    def locked(self, timetable_id: str) -> Iterator[None]:
        lock_path = self._path(timetable_id).with_suffix(".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, open(lock_path, "a+b") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _read(self, path: Path) -> TimetableDocument | None:
        if not path.exists():
            return None
        return TimetableDocument.model_validate(read_json(path))

    def load(self, timetable_id: str) -> TimetableDocument:
        path = self._path(timetable_id)
        with self._lock:
            document = self._read(path)
        if document is None:
            raise TimetableNotFound(f"Unknown timetable {timetable_id}")
        return document

    def save(self, document: TimetableDocument, expected_version: int) -> TimetableDocument:
        path = self._path(document.timetable_id)
        with self.locked(document.timetable_id):
            current = self._read(path)
            _check_version(document.timetable_id, current.version if current else 0, expected_version)
            stored = document.model_copy(update={"version": expected_version + 1})
            write_json_atomic(path, stored.model_dump(mode="json"))
        logger.debug("Saved %s at version %d", document.timetable_id, stored.version)
        return stored
