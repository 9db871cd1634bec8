"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from doctrack.api.routes import health, tracking
from doctrack.core.config import AppSettings
from doctrack.core.protocols import ITrackingStore
from doctrack.persistence import create_tracking_store
from doctrack.services.poller import StatusPoller


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    settings = getattr(app.state, "settings", None) or AppSettings()
    app.state.settings = settings
    if getattr(app.state, "tracking_store", None) is None:
        app.state.tracking_store = create_tracking_store(settings)
    yield


def create_app(
    settings: AppSettings | None = None,
    tracking_store: ITrackingStore | None = None,
    poller: StatusPoller | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``poller`` is only used to read the backlog signal; the reconciliation
    loop itself runs in the worker process.
    """
    app = FastAPI(
        title="DocTrack Request Tracking Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.tracking_store = tracking_store
    app.state.poller = poller
    app.include_router(health.router)
    app.include_router(tracking.router, prefix="/requests")
    return app
