"""In-memory mirror of the metadata table.

Keeps every PromptMetadata both in a sorted list (for listing and search) and
in a dict keyed by PromptId (for O(1) lookup). Guarded by a reader-writer lock
because search snapshots it from worker threads while the event loop mutates it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from .schemas import PromptId, PromptMetadata


class RWLock:
    """Many concurrent readers or one writer. Writers are preferred once waiting."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def sort_metadata(records: list[PromptMetadata]) -> None:
    """Sort in place: untitled first, then by title, newest saved_at first on ties."""
    records.sort(key=lambda m: m.saved_at, reverse=True)
    records.sort(key=lambda m: (m.title is not None, m.title or ""))


class MetadataCache:
    def __init__(self, records: Iterable[PromptMetadata] = ()):
        self._lock = RWLock()
        self._metadata: list[PromptMetadata] = []
        self._by_id: dict[PromptId, PromptMetadata] = {}
        for record in records:
            self._metadata.append(record)
            self._by_id[record.id] = record
        sort_metadata(self._metadata)

    def insert(self, record: PromptMetadata) -> None:
        """Replace the record with the same id, or append it, then re-sort."""
        with self._lock.write():
            self._by_id[record.id] = record
            for ix, existing in enumerate(self._metadata):
                if existing.id == record.id:
                    self._metadata[ix] = record
                    break
            else:
                self._metadata.append(record)
            sort_metadata(self._metadata)

    def remove(self, id: PromptId) -> PromptMetadata | None:
        with self._lock.write():
            self._metadata = [m for m in self._metadata if m.id != id]
            return self._by_id.pop(id, None)

    def get(self, id: PromptId) -> PromptMetadata | None:
        with self._lock.read():
            return self._by_id.get(id)

    def snapshot(self) -> list[PromptMetadata]:
        """Copy of all records in listing order."""
        with self._lock.read():
            return list(self._metadata)

    def first(self) -> PromptMetadata | None:
        with self._lock.read():
            return self._metadata[0] if self._metadata else None

    def defaults(self) -> list[PromptMetadata]:
        with self._lock.read():
            return [m for m in self._metadata if m.default]

    def find_by_title(self, title: str) -> PromptMetadata | None:
        with self._lock.read():
            for record in self._metadata:
                if record.title == title:
                    return record
        return None

    def titles(self) -> set[str]:
        with self._lock.read():
            return {m.title for m in self._metadata if m.title is not None}

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._metadata)

    def __contains__(self, id: PromptId) -> bool:
        with self._lock.read():
            return id in self._by_id
