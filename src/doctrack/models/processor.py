"""External processor wire models and status vocabulary mapping.

The processor reports free-form status strings. ``StatusVocabulary`` maps
them onto the closed ``ExternalOutcome`` set the poller acts on; anything
it does not recognise becomes ``ExternalOutcome.UNKNOWN``, which is never
terminal.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

RESULT_SCHEMA_VERSION = 1


class ExternalOutcome(StrEnum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    IN_PROGRESS = "IN_PROGRESS"
    UNKNOWN = "UNKNOWN"

    @property
    def is_terminal(self) -> bool:
        return self in (ExternalOutcome.SUCCEEDED, ExternalOutcome.FAILED)


DEFAULT_VOCABULARY: dict[str, ExternalOutcome] = {
    "completed": ExternalOutcome.SUCCEEDED,
    "success": ExternalOutcome.SUCCEEDED,
    "finished": ExternalOutcome.SUCCEEDED,
    "failed": ExternalOutcome.FAILED,
    "error": ExternalOutcome.FAILED,
    "cancelled": ExternalOutcome.FAILED,
    "submitted": ExternalOutcome.IN_PROGRESS,
    "accepted": ExternalOutcome.IN_PROGRESS,
    "queued": ExternalOutcome.IN_PROGRESS,
    "pending": ExternalOutcome.IN_PROGRESS,
    "processing": ExternalOutcome.IN_PROGRESS,
    "running": ExternalOutcome.IN_PROGRESS,
}


class StatusVocabulary:
    """Case-insensitive mapping from raw processor status strings to outcomes."""

    def __init__(self, mapping: Mapping[str, ExternalOutcome] | None = None) -> None:
        source = DEFAULT_VOCABULARY if mapping is None else mapping
        self._mapping = {k.strip().lower(): ExternalOutcome(v) for k, v in source.items()}

    def classify(self, raw_status: str | None) -> ExternalOutcome:
        key = (raw_status or "").strip().lower()
        outcome = self._mapping.get(key)
        if outcome is None:
            logger.warning("Unrecognized external status %r, treating as non-terminal", raw_status)
            return ExternalOutcome.UNKNOWN
        return outcome

    def extend(self, extra: Mapping[str, ExternalOutcome]) -> StatusVocabulary:
        merged = dict(self._mapping)
        merged.update({k.strip().lower(): ExternalOutcome(v) for k, v in extra.items()})
        return StatusVocabulary(merged)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessingResult(_CamelModel):
    """Versioned result payload reported with a completed status."""

    schema_version: int = RESULT_SCHEMA_VERSION
    document_name: Optional[str] = None
    content_type: Optional[str] = None
    page_count: Optional[int] = None
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    error_code: Optional[str] = None
    error_detail: Optional[str] = None


class StatusReport(_CamelModel):
    """Response of a status query against the external processor."""

    request_id: str
    status: str
    message: Optional[str] = None
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
    result: Optional[ProcessingResult] = None


class SubmissionReceipt(_CamelModel):
    """Response of a successful submission; ``request_id`` is the processor's own key."""

    request_id: str
    status: str
    message: Optional[str] = None
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def external_key(self) -> str:
        return self.request_id
