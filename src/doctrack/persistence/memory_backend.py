"""In-memory backends for unit tests and local runs: dict-backed fakes."""

from __future__ import annotations

import hashlib
import threading
import uuid
from typing import Any

from doctrack.core.exceptions import ContentStoreError
from doctrack.models.tracking import (
    Deleted,
    DeleteResult,
    Found,
    GetResult,
    NotFound,
    TrackingQuery,
    TrackingRecord,
)
from doctrack.models.work_item import ContentLocator


class MemoryTrackingStore:
    """Dict-backed ITrackingStore. Records are copied in and out."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, TrackingRecord] = {}

    def get(self, request_id: str) -> GetResult:
        with self._lock:
            record = self._records.get(request_id)
        if record is None:
            return NotFound(request_id=request_id)
        return Found(record=record.model_copy(deep=True))

    def query(self, query: TrackingQuery) -> list[TrackingRecord]:
        with self._lock:
            records = list(self._records.values())
        return [r.model_copy(deep=True) for r in records if query.matches(r)]

    def upsert(self, record: TrackingRecord) -> None:
        with self._lock:
            self._records[record.request_id] = record.model_copy(deep=True)

    def delete(self, request_id: str) -> DeleteResult:
        with self._lock:
            if self._records.pop(request_id, None) is None:
                return NotFound(request_id=request_id)
        return Deleted(request_id=request_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class MemoryContentStore:
    """Dict-backed IContentStore."""

    def __init__(self) -> None:
        self._objects: dict[ContentLocator, tuple[bytes, dict[str, str]]] = {}

    def put(self, locator: ContentLocator, data: bytes, metadata: dict[str, str] | None = None) -> None:
        """Seed an object without going through ``write``."""
        self._objects[locator] = (data, dict(metadata or {}))

    def read(self, locator: ContentLocator) -> tuple[bytes, dict[str, str]]:
        try:
            data, metadata = self._objects[locator]
        except KeyError as exc:
            raise ContentStoreError(f"Object {locator} does not exist") from exc
        return data, dict(metadata)

    def write(self, locator: ContentLocator, data: bytes, metadata: dict[str, str]) -> str:
        self._objects[locator] = (data, dict(metadata))
        return hashlib.md5(data).hexdigest()

    def exists(self, locator: ContentLocator) -> bool:
        return locator in self._objects


class MemoryMessageBus:
    """IMessageBus that records every published envelope."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.published: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, envelope: dict[str, Any]) -> str:
        with self._lock:
            self.published.append((topic, envelope))
        return str(uuid.uuid4())

    def envelopes(self, topic: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [env for t, env in self.published if topic is None or t == topic]
