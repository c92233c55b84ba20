from __future__ import annotations

from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict


class CacheEntry(BaseModel):
    """Measured size of one remote path or local directory."""

    model_config = ConfigDict(frozen=True)

    bytes: int
    count: int | None = None  # Object count; remotes only
    timestamp: datetime
    probe_duration_ms: int = 0
    error: str | None = None  # Set when the latest probe of this key failed


class RemoteSize(NamedTuple):
    bytes: int
    count: int


class SizeSample(NamedTuple):
    timestamp: datetime
    bytes: int


class RefreshStatus(BaseModel):
    """Refresh bookkeeping for one store, as exposed to callers."""

    last_updated: datetime | None
    in_progress: bool
    started_at: datetime | None
