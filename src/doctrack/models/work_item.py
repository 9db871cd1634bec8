"""Work item and content locator models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

REQUEST_ID_METADATA_KEY = "RequestId"


def resolve_request_id(metadata: dict[str, str]) -> str | None:
    """Find the request id in ``metadata``; S3 lower-cases user metadata keys."""
    wanted = REQUEST_ID_METADATA_KEY.lower()
    for key, value in metadata.items():
        if key.lower() == wanted and value.strip():
            return value.strip()
    return None


class ContentLocator(BaseModel):
    """Reference to a stored object: bucket/container plus object name."""

    container: str
    name: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.container}/{self.name}"


class StorageEventType(StrEnum):
    CREATED = "Created"
    DELETED = "Deleted"
    MODIFIED = "Modified"
    OTHER = "Other"
    UNKNOWN = "Unknown"


class WorkItem(BaseModel):
    """A document to transfer and submit for processing."""

    source: ContentLocator
    destination: ContentLocator
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    event_type: StorageEventType = StorageEventType.CREATED
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def request_id(self) -> str | None:
        return resolve_request_id(self.metadata)
