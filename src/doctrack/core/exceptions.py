"""DocTrack exception hierarchy."""

from __future__ import annotations


class DocTrackError(Exception):
    """Base exception for all DocTrack errors."""


class SubmissionError(DocTrackError):
    """The external processor did not accept a new work item."""

    def __init__(self, request_id: str, message: str, error_code: str | None = None) -> None:
        self.request_id = request_id
        self.error_code = error_code
        super().__init__(f"Submission failed for request {request_id}: {message}")


class InvalidWorkItemError(SubmissionError):
    """Work item is missing data required for submission.

    Raised before any request id is known, so the message names the source
    object instead.
    """

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        self.request_id = None
        self.error_code = None
        DocTrackError.__init__(self, f"Invalid work item {source}: {message}")


class TransientExternalError(DocTrackError):
    """Network, timeout or server-side failure talking to the external processor."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"External processor {operation} failed: {message}")


class ContentStoreError(DocTrackError):
    """Reading or writing document content failed."""


class TrackingStoreError(DocTrackError):
    """Tracking store operation failed."""


class NotificationError(DocTrackError):
    """Publishing a notification to the message bus failed."""


class EventParseError(DocTrackError):
    """An inbound storage event could not be turned into a work item."""
