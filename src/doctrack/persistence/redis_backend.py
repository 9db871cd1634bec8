"""Redis backend implementing ITrackingStore."""

from __future__ import annotations

import logging

import redis

from doctrack.core.exceptions import TrackingStoreError
from doctrack.models.tracking import (
    Deleted,
    DeleteResult,
    Found,
    GetResult,
    NotFound,
    StoreFailure,
    TrackingQuery,
    TrackingRecord,
)

logger = logging.getLogger(__name__)


class RedisTrackingStore:
    """ITrackingStore keeping one JSON document per request plus an index set."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 key_prefix: str = "doctrack") -> None:
        self._host = host
        self._port = port
        self._db = db
        self._prefix = key_prefix
        self._client = redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    def _key(self, request_id: str) -> str:
        return f"{self._prefix}:request:{request_id}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}:requests"

    def get(self, request_id: str) -> GetResult:
        try:
            raw = self._client.get(self._key(request_id))
        except redis.RedisError as exc:
            logger.error("Redis GET failed for request %s: %s", request_id, exc)
            return StoreFailure(request_id=request_id, error=str(exc))
        if raw is None:
            return NotFound(request_id=request_id)
        return Found(record=TrackingRecord.model_validate_json(raw))

    def query(self, query: TrackingQuery) -> list[TrackingRecord]:
        try:
            ids = sorted(self._client.smembers(self._index_key))
            if not ids:
                return []
            raws = self._client.mget([self._key(i) for i in ids])
        except redis.RedisError as exc:
            raise TrackingStoreError(f"Redis query failed: {exc}") from exc

        records = []
        for raw in raws:
            # index entry whose document was deleted between SMEMBERS and MGET
            if raw is None:
                continue
            record = TrackingRecord.model_validate_json(raw)
            if query.matches(record):
                records.append(record)
        return records

    def upsert(self, record: TrackingRecord) -> None:
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(self._key(record.request_id), record.model_dump_json())
            pipe.sadd(self._index_key, record.request_id)
            pipe.execute()
        except redis.RedisError as exc:
            raise TrackingStoreError(
                f"Redis upsert failed for request {record.request_id!r}: {exc}"
            ) from exc

    def delete(self, request_id: str) -> DeleteResult:
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(self._key(request_id))
            pipe.srem(self._index_key, request_id)
            removed, _ = pipe.execute()
        except redis.RedisError as exc:
            logger.error("Redis DELETE failed for request %s: %s", request_id, exc)
            return StoreFailure(request_id=request_id, error=str(exc))
        if not removed:
            return NotFound(request_id=request_id)
        return Deleted(request_id=request_id)
