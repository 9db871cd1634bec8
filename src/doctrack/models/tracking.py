"""Tracking record, lifecycle status, store queries and store result variants."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel, Field

from doctrack.models.work_item import ContentLocator


def utcnow() -> datetime:
    return datetime.now(UTC)


class RequestStatus(StrEnum):
    SUBMITTED = "Submitted"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.FAILED, RequestStatus.TIMED_OUT}
)


class TrackingRecord(BaseModel):
    """Persistent state for one in-flight request, from submission to terminal outcome."""

    request_id: str
    internal_key: str
    source: ContentLocator
    destination: ContentLocator
    created_at: datetime = Field(default_factory=utcnow)
    event_received_at: Optional[datetime] = None
    submitted_at: datetime = Field(default_factory=utcnow)
    last_checked_at: datetime = Field(default_factory=utcnow)
    check_count: int = Field(default=0, ge=0)
    status: RequestStatus = RequestStatus.SUBMITTED
    last_external_status: str = ""

    def age(self, now: datetime) -> timedelta:
        return now - self.submitted_at

    def is_expired(self, now: datetime, max_age: timedelta) -> bool:
        return self.age(now) > max_age


@dataclass(frozen=True)
class TrackingQuery:
    """Predicate over tracking records.

    Every field left as None matches everything, so ``TrackingQuery()``
    selects the whole store.
    """

    status: RequestStatus | None = None
    submitted_before: datetime | None = None
    submitted_after: datetime | None = None

    def matches(self, record: TrackingRecord) -> bool:
        if self.status is not None and record.status != self.status:
            return False
        if self.submitted_before is not None and not record.submitted_at < self.submitted_before:
            return False
        if self.submitted_after is not None and not record.submitted_at > self.submitted_after:
            return False
        return True

    @classmethod
    def pending(cls) -> TrackingQuery:
        return cls(status=RequestStatus.PROCESSING)


# ---------------------------------------------------------------------------
# Store result variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Found:
    record: TrackingRecord


@dataclass(frozen=True)
class Deleted:
    request_id: str


@dataclass(frozen=True)
class NotFound:
    request_id: str


@dataclass(frozen=True)
class StoreFailure:
    request_id: str
    error: str


GetResult = Union[Found, NotFound, StoreFailure]
DeleteResult = Union[Deleted, NotFound, StoreFailure]
