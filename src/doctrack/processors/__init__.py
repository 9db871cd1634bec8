"""External processor clients."""

from __future__ import annotations

from doctrack.core.config import AppSettings
from doctrack.core.protocols import IProcessorClient
from doctrack.processors.http_processor import HttpProcessorClient
from doctrack.processors.mock_processor import MockProcessorClient


def create_processor(settings: AppSettings | None = None) -> IProcessorClient:
    """HTTP client for real environments, scripted mock for the memory backend."""
    if settings is None:
        settings = AppSettings()
    if settings.tracking_backend == "memory":
        return MockProcessorClient()
    return HttpProcessorClient(config=settings.processor, resilience=settings.resilience)


__all__ = ["HttpProcessorClient", "MockProcessorClient", "create_processor"]
