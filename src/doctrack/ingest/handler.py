"""Lambda entry point for S3 object-created notifications."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from doctrack.core.config import AppSettings
from doctrack.core.logging import configure_logging
from doctrack.ingest.s3_events import handle_s3_event
from doctrack.persistence import create_persistence
from doctrack.processors import create_processor
from doctrack.services.notifications import NotificationDispatcher
from doctrack.services.submission import SubmissionOrchestrator

logger = logging.getLogger(__name__)

# Built on first invocation and reused while the container stays warm
_orchestrator: Optional[SubmissionOrchestrator] = None


def build_orchestrator(settings: AppSettings) -> SubmissionOrchestrator:
    tracking_store, content_store, message_bus = create_persistence(settings)
    return SubmissionOrchestrator(
        content_store=content_store,
        processor=create_processor(settings),
        tracking_store=tracking_store,
        dispatcher=NotificationDispatcher(message_bus),
    )


def _get_orchestrator() -> SubmissionOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        settings = AppSettings()
        configure_logging(settings)
        _orchestrator = build_orchestrator(settings)
    return _orchestrator


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    """Submit every created object in ``event``.

    Errors propagate so the invocation fails and the event is redelivered.
    """
    request_ids = handle_s3_event(event, _get_orchestrator())
    logger.info("Submitted %d document(s): %s", len(request_ids), request_ids)
    return {"submitted": request_ids}
