"""S3 event notifications -> work items.

Accepts the notification either as delivered to Lambda directly or wrapped
in SQS message bodies. One work item is produced per ``ObjectCreated``
record; anything else is skipped with a log line. Notifications do not carry
user metadata, so the ``RequestId`` is picked up from the object itself when
the orchestrator reads it.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import unquote_plus

from doctrack.core.exceptions import EventParseError
from doctrack.models.tracking import utcnow
from doctrack.models.work_item import (
    ContentLocator,
    StorageEventType,
    WorkItem,
)
from doctrack.services.submission import SubmissionOrchestrator

logger = logging.getLogger(__name__)

DESTINATION_SUFFIX = "-processed"
# Id of the S3 PUT itself; the caller-facing RequestId lives in the object's own metadata
S3_REQUEST_ID_KEY = "s3RequestId"


def _event_type(event_name: str) -> StorageEventType:
    if not event_name:
        return StorageEventType.UNKNOWN
    if event_name.startswith("ObjectCreated"):
        # Copy/Put over an existing key is still reported as ObjectCreated
        return StorageEventType.CREATED
    if event_name.startswith("ObjectRemoved"):
        return StorageEventType.DELETED
    if event_name.startswith(("ObjectTagging", "ObjectAcl")):
        return StorageEventType.MODIFIED
    return StorageEventType.OTHER


def _event_time(raw: str | None) -> datetime:
    if not raw:
        return utcnow()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise EventParseError(f"Invalid eventTime {raw!r}") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def iter_s3_records(event: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten direct and SQS-wrapped notifications into raw S3 records."""
    records: list[dict[str, Any]] = []
    for record in event.get("Records", []):
        if record.get("eventSource") == "aws:sqs":
            try:
                body = json.loads(record.get("body") or "{}")
            except json.JSONDecodeError as exc:
                raise EventParseError(f"SQS message {record.get('messageId')} is not JSON") from exc
            records.extend(iter_s3_records(body))
        elif record.get("eventSource") == "aws:s3":
            records.append(record)
        else:
            logger.warning("Ignoring non-S3 record from %s", record.get("eventSource"))
    return records


def parse_s3_record(record: dict[str, Any]) -> WorkItem | None:
    """Build a work item from one S3 record, or None for an unsupported event."""
    event_type = _event_type(record.get("eventName", ""))
    if event_type is not StorageEventType.CREATED:
        logger.warning("Ignoring S3 event %s", record.get("eventName"))
        return None

    s3 = record.get("s3") or {}
    bucket = (s3.get("bucket") or {}).get("name")
    obj = s3.get("object") or {}
    key = obj.get("key")
    if not bucket or not key:
        raise EventParseError(f"S3 record missing bucket or key: {record.get('eventName')}")

    name = unquote_plus(key)
    metadata: dict[str, str] = {}
    s3_request_id = (record.get("responseElements") or {}).get("x-amz-request-id")
    if s3_request_id:
        metadata[S3_REQUEST_ID_KEY] = s3_request_id
    for src, dst in (("eTag", "eTag"), ("size", "contentLength"), ("sequencer", "sequencer")):
        if obj.get(src) is not None:
            metadata[dst] = str(obj[src])
    if record.get("eventName"):
        metadata["storageApi"] = record["eventName"]

    item = WorkItem(
        source=ContentLocator(container=bucket, name=name),
        destination=ContentLocator(container=f"{bucket}{DESTINATION_SUFFIX}", name=name),
        created_at=_event_time(record.get("eventTime")),
        event_type=event_type,
        metadata=metadata,
    )
    logger.debug("Extracted work item: source=%s event_type=%s", item.source, item.event_type)
    return item


def handle_s3_event(event: dict[str, Any], orchestrator: SubmissionOrchestrator) -> list[str]:
    """Submit every qualifying record in ``event``; return the tracked request ids.

    A failing record propagates so the delivery is retried; records already
    submitted are safe to resubmit since tracking upserts by request id.
    """
    received_at = utcnow()
    request_ids: list[str] = []
    for raw in iter_s3_records(event):
        item = parse_s3_record(raw)
        if item is None:
            continue
        logger.info("Processing document %s from bucket %s", item.source.name, item.source.container)
        request_ids.append(orchestrator.submit_request(item, event_received_at=received_at))
    return request_ids
