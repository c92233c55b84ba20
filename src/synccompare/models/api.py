"""Request and response bodies of the HTTP API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompareInput(_ApiModel):
    remote_path: str
    local_path: str
    force_direct: bool = False

    @field_validator("remote_path", "local_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Both remotePath and localPath are required")
        return v


# ---------------------------------------------------------------------------
# Compare
# ---------------------------------------------------------------------------


class RemoteSide(_ApiModel):
    bytes: int
    formatted: str
    count: int | None
    cached_at: datetime | None


class LocalSide(_ApiModel):
    bytes: int
    formatted: str
    cached_at: datetime | None


class Difference(_ApiModel):
    bytes: int
    formatted: str
    direction: Literal["remote-larger", "local-larger", "equal"]


class SyncStatus(_ApiModel):
    percentage_synced: float
    is_synced: bool


class CompareCacheStatus(_ApiModel):
    remote_last_update: datetime | None
    local_last_update: datetime | None


class ComparisonOutput(_ApiModel):
    timestamp: datetime
    remote_path: str
    local_path: str
    last_modified: datetime | None
    last_modified_formatted: str | None
    remote: RemoteSide
    local: LocalSide
    difference: Difference
    sync_status: SyncStatus
    cache_status: CompareCacheStatus


class MissCacheStatus(_ApiModel):
    last_full_update: datetime | None
    update_in_progress: bool
    update_start_time: datetime | None


class CacheMissOutput(_ApiModel):
    status: Literal["cache-miss"] = "cache-miss"
    message: str
    remote_path: str
    local_path: str
    last_modified: datetime | None
    last_modified_formatted: str | None
    local: LocalSide
    cache_status: MissCacheStatus


# ---------------------------------------------------------------------------
# Cache management
# ---------------------------------------------------------------------------


class RemoteRefreshInfo(_ApiModel):
    update_started: bool
    started_at: datetime | None
    previous_update: datetime | None


class LocalRefreshInfo(RemoteRefreshInfo):
    directories_tracked: int


class RefreshOutput(_ApiModel):
    status: Literal["refresh-started"] = "refresh-started"
    message: str = "Cache refresh has been initiated in the background for remote and local caches"
    remote: RemoteRefreshInfo
    local: LocalRefreshInfo


class LocalEntryStatus(_ApiModel):
    path: str
    size: str
    bytes: int
    timestamp: datetime
    calculation_duration: str | None
    error: str | None = None


class RemoteEntryStatus(LocalEntryStatus):
    count: int | None


class RemoteCacheStatus(_ApiModel):
    last_updated: datetime | None
    update_in_progress: bool
    update_start_time: datetime | None
    remote_count: int
    remotes: list[RemoteEntryStatus]


class LocalCacheStatus(_ApiModel):
    last_updated: datetime | None
    update_in_progress: bool
    update_start_time: datetime | None
    directory_count: int
    directories: list[LocalEntryStatus]


class CacheStatusOutput(_ApiModel):
    remote: RemoteCacheStatus
    local: LocalCacheStatus


class RemoveLocalOutput(_ApiModel):
    path: str
    removed: bool


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class RemoteHealth(_ApiModel):
    last_updated: datetime | None
    remotes_in_cache: int


class LocalHealth(_ApiModel):
    last_updated: datetime | None
    directories_in_cache: int


class HealthCacheStatus(_ApiModel):
    remote: RemoteHealth
    local: LocalHealth


class HealthOutput(_ApiModel):
    status: Literal["ok"] = "ok"
    timestamp: datetime
    cache_status: HealthCacheStatus


class ErrorOutput(BaseModel):
    error: str
