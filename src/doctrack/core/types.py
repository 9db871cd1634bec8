"""Type aliases used across the DocTrack service."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

JsonDict = dict[str, Any]
Metadata = dict[str, str]
Clock = Callable[[], datetime]
