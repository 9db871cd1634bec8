"""Read-only lookup of tracked requests."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from doctrack.models.tracking import Found, NotFound, RequestStatus, TrackingQuery, TrackingRecord

router = APIRouter(tags=["requests"])


@router.get("/{request_id}", response_model=TrackingRecord)
def get_request(request_id: str, request: Request) -> TrackingRecord:
    """Return the tracking record, or 404 once the request has been retired."""
    result = request.app.state.tracking_store.get(request_id)
    if isinstance(result, Found):
        return result.record
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404, detail=f"Request {request_id} is not tracked")
    raise HTTPException(status_code=503, detail=result.error)


@router.get("", response_model=list[TrackingRecord])
def list_requests(request: Request, status: Optional[RequestStatus] = None) -> list[TrackingRecord]:
    records = request.app.state.tracking_store.query(TrackingQuery(status=status))
    return sorted(records, key=lambda r: r.submitted_at)
