from __future__ import annotations

from synccompare.models.api import (
    CacheMissOutput,
    CacheStatusOutput,
    CompareInput,
    ComparisonOutput,
    ErrorOutput,
    HealthOutput,
    RefreshOutput,
    RemoveLocalOutput,
)
from synccompare.models.cache import CacheEntry, RefreshStatus, RemoteSize, SizeSample

__all__ = [
    # cache
    "CacheEntry",
    "RefreshStatus",
    "RemoteSize",
    "SizeSample",
    # api
    "CompareInput",
    "ComparisonOutput",
    "CacheMissOutput",
    "RefreshOutput",
    "CacheStatusOutput",
    "RemoveLocalOutput",
    "HealthOutput",
    "ErrorOutput",
]
