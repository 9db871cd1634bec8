"""Lifecycle notification events and the outbound message envelope."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from doctrack.models.processor import RESULT_SCHEMA_VERSION, StatusReport
from doctrack.models.tracking import RequestStatus, TrackingRecord
from doctrack.models.work_item import WorkItem

logger = logging.getLogger(__name__)

TIMEOUT_ERROR_CODE = "TIMEOUT"
MAX_CHECKS_ERROR_CODE = "MAX_CHECKS_EXCEEDED"


class EventCategory(StrEnum):
    STATUS = "status"
    NOTIFICATION = "notification"


class NotificationEnvelope(BaseModel):
    """Serialized form published to the message bus."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: str
    event_type: str
    timestamp: datetime
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def _duration(end: datetime, start: datetime) -> float:
    return round((end - start) / timedelta(seconds=1), 3)


class LifecycleEvent(BaseModel):
    """Internal event describing a change in a request's lifecycle."""

    event_id: str
    event_type: str
    category: EventCategory = EventCategory.STATUS
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    document_name: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    def to_envelope(self) -> NotificationEnvelope:
        details = {"documentName": self.document_name, **self.details} if self.document_name else dict(self.details)
        return NotificationEnvelope(
            event_id=self.event_id,
            event_type=self.event_type,
            timestamp=self.timestamp,
            message=self.message,
            details=details,
        )

    # ---- factories ----

    @classmethod
    def submitted(cls, request_id: str, item: WorkItem, now: datetime) -> LifecycleEvent:
        return cls(
            event_id=request_id,
            event_type=RequestStatus.SUBMITTED.value,
            message=f"Document {item.source.name} has been submitted for processing",
            timestamp=now,
            document_name=item.source.name,
            details={
                "sourceContainer": item.source.container,
                "destinationContainer": item.destination.container,
                "storageEventType": item.event_type.value,
                "createdAt": item.created_at.isoformat(),
                "metadataCount": len(item.metadata),
            },
        )

    @classmethod
    def completed(cls, record: TrackingRecord, report: StatusReport, now: datetime) -> LifecycleEvent:
        result = None
        if report.result is not None:
            if report.result.schema_version != RESULT_SCHEMA_VERSION:
                logger.warning("Request %s result has schema version %d, expected %d; forwarding as received",
                               record.request_id, report.result.schema_version, RESULT_SCHEMA_VERSION)
            result = report.result.model_dump(mode="json", by_alias=True)
        return cls(
            event_id=record.request_id,
            event_type=RequestStatus.COMPLETED.value,
            message=report.message or f"Request {record.request_id} has been completed successfully",
            timestamp=now,
            document_name=record.source.name,
            details={
                "processorKey": record.internal_key,
                "result": result,
                "createdAt": record.created_at.isoformat(),
                "eventReceivedAt": record.event_received_at.isoformat() if record.event_received_at else None,
                "submittedAt": record.submitted_at.isoformat(),
                "completedAt": now.isoformat(),
                "processorUpdatedAt": report.last_updated.isoformat(),
                "processingDurationSeconds": _duration(now, record.submitted_at),
            },
        )

    @classmethod
    def failed(
        cls,
        record: TrackingRecord,
        error: str,
        now: datetime,
        error_code: str | None = None,
        status: RequestStatus = RequestStatus.FAILED,
    ) -> LifecycleEvent:
        return cls(
            event_id=record.request_id,
            event_type=status.value,
            message=f"Request {record.request_id} has failed: {error}",
            timestamp=now,
            document_name=record.source.name,
            details={
                "processorKey": record.internal_key,
                "errorMessage": error,
                "errorCode": error_code,
                "checkCount": record.check_count,
                "createdAt": record.created_at.isoformat(),
                "eventReceivedAt": record.event_received_at.isoformat() if record.event_received_at else None,
                "submittedAt": record.submitted_at.isoformat(),
                "failedAt": now.isoformat(),
                "processingDurationSeconds": _duration(now, record.submitted_at),
            },
        )

    @classmethod
    def timed_out(cls, record: TrackingRecord, now: datetime) -> LifecycleEvent:
        age = record.age(now)
        return cls.failed(
            record,
            f"Request timed out after {age}",
            now,
            error_code=TIMEOUT_ERROR_CODE,
            status=RequestStatus.TIMED_OUT,
        )
