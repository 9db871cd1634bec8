"""Health check endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from doctrack.core.exceptions import TrackingStoreError
from doctrack.models.tracking import TrackingQuery, utcnow
from doctrack.services.poller import build_backlog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
def ready(request: Request):
    store = request.app.state.tracking_store
    try:
        store.query(TrackingQuery.pending())
    except TrackingStoreError as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(status_code=503, content={"status": "unavailable", "detail": str(exc)})
    return {"status": "ready"}


@router.get("/health/backlog")
def backlog(request: Request) -> dict:
    """Pending count and age histogram of requests still waiting on the processor."""
    poller = request.app.state.poller
    if poller is not None:
        return poller.backlog().as_dict()
    records = request.app.state.tracking_store.query(TrackingQuery.pending())
    return build_backlog(records, utcnow()).as_dict()
