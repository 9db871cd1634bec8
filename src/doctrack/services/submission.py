"""SubmissionOrchestrator: transfer a document, submit it, start tracking it."""

from __future__ import annotations

import logging
from datetime import datetime

from doctrack.core.exceptions import InvalidWorkItemError
from doctrack.core.protocols import (
    IContentStore,
    INotificationDispatcher,
    IProcessorClient,
    ITrackingStore,
)
from doctrack.core.types import Clock
from doctrack.models.notifications import LifecycleEvent
from doctrack.models.tracking import RequestStatus, TrackingRecord, utcnow
from doctrack.models.work_item import REQUEST_ID_METADATA_KEY, WorkItem, resolve_request_id

logger = logging.getLogger(__name__)


def _merge_metadata(source: dict[str, str], overrides: dict[str, str], request_id: str) -> dict[str, str]:
    """Work-item keys win; the request id ends up under exactly one canonical key."""
    wanted = REQUEST_ID_METADATA_KEY.lower()
    merged = {k: v for k, v in {**source, **overrides}.items() if k.lower() != wanted}
    merged[REQUEST_ID_METADATA_KEY] = request_id
    return merged


class SubmissionOrchestrator:
    """Accepts work items and creates their tracking records.

    A record is only created once the processor has accepted the item. The
    destination copy is written first and is not rolled back when the
    submission is rejected; re-delivery of the event overwrites it.
    """

    def __init__(
        self,
        *,
        content_store: IContentStore,
        processor: IProcessorClient,
        tracking_store: ITrackingStore,
        dispatcher: INotificationDispatcher,
        destination_store: IContentStore | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._source = content_store
        self._destination = destination_store or content_store
        self._processor = processor
        self._store = tracking_store
        self._dispatcher = dispatcher
        self._clock = clock

    def submit_request(self, item: WorkItem, event_received_at: datetime | None = None) -> str:
        """Transfer, submit and track ``item``; return its caller-facing request id.

        The request id is taken from the ``RequestId`` metadata of the work
        item, falling back to the source object's own metadata.

        Raises:
            InvalidWorkItemError: no request id was found. Nothing is written.
            SubmissionError: the processor rejected the item. No record is created.
            ContentStoreError: the source could not be read or the copy written.
            TrackingStoreError: the record could not be persisted.
        """
        logger.info("Starting submission of %s", item.source)
        request_id = item.request_id
        try:
            data, source_metadata = self._source.read(item.source)
            request_id = item.request_id or resolve_request_id(source_metadata)
            if request_id is None:
                raise InvalidWorkItemError(str(item.source), "RequestId metadata is required")
            merged = _merge_metadata(source_metadata, item.metadata, request_id)
            item = item.model_copy(update={"metadata": merged})

            version = self._destination.write(item.destination, data, merged)
            logger.info("Copied %s to %s (version %s)", item.source, item.destination, version)

            receipt = self._processor.submit(item)
            logger.info("Processor accepted request %s with key %s (status %s)",
                        request_id, receipt.external_key, receipt.status)

            now = self._clock()
            record = TrackingRecord(
                request_id=request_id,
                internal_key=receipt.external_key,
                source=item.source,
                destination=item.destination,
                created_at=item.created_at,
                event_received_at=event_received_at,
                submitted_at=now,
                last_checked_at=now,
                check_count=0,
                status=RequestStatus.PROCESSING,
                last_external_status=receipt.status,
            )
            self._store.upsert(record)
        except Exception:
            logger.exception("Failed to submit %s for request %s", item.source, request_id)
            raise

        self._notify_submitted(request_id, item)
        logger.info("Submission of request %s complete", request_id)
        return request_id

    def _notify_submitted(self, request_id: str, item: WorkItem) -> None:
        # The record is durable at this point; the terminal event still follows.
        try:
            self._dispatcher.dispatch(LifecycleEvent.submitted(request_id, item, self._clock()))
        except Exception:
            logger.exception("Submitted notification for request %s was not sent", request_id)
