"""Shared test doubles: re-export memory backends plus a controllable clock."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from doctrack.persistence.memory_backend import (
    MemoryContentStore,
    MemoryMessageBus,
    MemoryTrackingStore,
)
from doctrack.processors.mock_processor import MockProcessorClient

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


__all__ = [
    "T0",
    "FakeClock",
    "MemoryContentStore",
    "MemoryMessageBus",
    "MemoryTrackingStore",
    "MockProcessorClient",
]
