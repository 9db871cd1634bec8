"""Protocol interfaces for all DocTrack abstractions.

All inter-layer communication uses these Protocols: structural typing,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from doctrack.core.types import JsonDict, Metadata

if TYPE_CHECKING:
    from doctrack.models.notifications import LifecycleEvent
    from doctrack.models.processor import StatusReport, SubmissionReceipt
    from doctrack.models.tracking import DeleteResult, GetResult, TrackingQuery, TrackingRecord
    from doctrack.models.work_item import ContentLocator, WorkItem


# ---------------------------------------------------------------------------
# Persistence: Tracking Store
# ---------------------------------------------------------------------------

@runtime_checkable
class ITrackingStore(Protocol):
    """Keyed map of request_id -> TrackingRecord. Last writer wins."""

    def get(self, request_id: str) -> GetResult: ...

    def query(self, query: TrackingQuery) -> list[TrackingRecord]: ...

    def upsert(self, record: TrackingRecord) -> None: ...

    def delete(self, request_id: str) -> DeleteResult: ...


# ---------------------------------------------------------------------------
# Persistence: Content Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IContentStore(Protocol):
    """Object storage holding source and destination documents."""

    def read(self, locator: ContentLocator) -> tuple[bytes, Metadata]: ...

    def write(self, locator: ContentLocator, data: bytes, metadata: Metadata) -> str: ...


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------

@runtime_checkable
class IMessageBus(Protocol):
    """Publishes serialized envelopes to named topics."""

    def publish(self, topic: str, envelope: JsonDict) -> str: ...


@runtime_checkable
class INotificationDispatcher(Protocol):
    """Turns lifecycle events into published envelopes."""

    def dispatch(self, event: LifecycleEvent) -> str: ...


# ---------------------------------------------------------------------------
# External Processor
# ---------------------------------------------------------------------------

@runtime_checkable
class IProcessorClient(Protocol):
    """The out-of-process service doing the actual document work."""

    def submit(self, item: WorkItem) -> SubmissionReceipt: ...

    def get_status(self, external_key: str) -> StatusReport: ...
