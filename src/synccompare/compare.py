"""Remote-versus-local size comparison served from the caches.

The local side is always resolvable: a path missing from the local store is
measured on the spot and inserted. The remote side is only ever read from the
remote store (unless ``force_direct`` is requested); a missing remote yields a
``CacheMissOutput`` instead of an error.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Literal

import structlog

from synccompare.cache import utc_now
from synccompare.errors import ErrorCode, SyncCompareError
from synccompare.formatting import format_bytes, format_local_datetime
from synccompare.models.api import (
    CacheMissOutput,
    CompareCacheStatus,
    ComparisonOutput,
    Difference,
    LocalSide,
    MissCacheStatus,
    RemoteSide,
    SyncStatus,
)
from synccompare.models.cache import CacheEntry
from synccompare.probes import path_exists

if TYPE_CHECKING:
    from datetime import datetime

    from synccompare.cache import CacheStore
    from synccompare.history import HistoryTracker
    from synccompare.protocols import LocalSizeProbe, RemoteSizeProbe

log = structlog.get_logger()

Direction = Literal["remote-larger", "local-larger", "equal"]


def sync_direction(difference: int) -> Direction:
    if difference > 0:
        return "remote-larger"
    if difference < 0:
        return "local-larger"
    return "equal"


def percentage_synced(remote_bytes: int, local_bytes: int) -> float:
    if remote_bytes == 0:
        return 0.0
    return round(local_bytes / remote_bytes * 100, 2)


class CompareEngine:
    def __init__(
        self,
        *,
        remote_store: CacheStore,
        local_store: CacheStore,
        history: HistoryTracker,
        remote_probe: RemoteSizeProbe,
        local_probe: LocalSizeProbe,
    ) -> None:
        self._remote_store = remote_store
        self._local_store = local_store
        self._history = history
        self._remote_probe = remote_probe
        self._local_probe = local_probe

    async def add_local(self, path: str) -> CacheEntry:
        """Measure ``path`` and insert it into the local store and history."""
        log.info("local_directory_added", path=path)
        started = time.monotonic()
        size_bytes = await self._local_probe.measure(path)
        duration_ms = int((time.monotonic() - started) * 1000)
        now = utc_now()
        entry = CacheEntry(bytes=size_bytes, timestamp=now, probe_duration_ms=duration_ms)
        self._local_store.patch(path, entry)
        self._history.append(path, now, size_bytes)
        log.info(
            "local_directory_cached",
            path=path,
            size=format_bytes(size_bytes),
            duration_s=round(duration_ms / 1000, 2),
        )
        return entry

    async def _resolve_local(self, path: str) -> tuple[int, CacheEntry | None]:
        entry = self._local_store.get(path)
        if entry is not None:
            log.debug("local_cache_hit", path=path, cached_at=entry.timestamp)
            return entry.bytes, entry

        try:
            entry = await self.add_local(path)
        except OSError as e:
            log.warning("local_add_failed", path=path, error=str(e))
            # Uncached fallback; a second failure propagates to the caller
            size_bytes = await self._local_probe.measure(path)
            self._history.append(path, utc_now(), size_bytes)
            return size_bytes, None
        return entry.bytes, entry

    def _last_modified(self, path: str) -> tuple[datetime | None, str | None]:
        last_changed = self._history.last_changed(path)
        return last_changed, format_local_datetime(last_changed)

    async def compare(
        self, remote_path: str, local_path: str, *, force_direct: bool = False
    ) -> ComparisonOutput | CacheMissOutput:
        if not remote_path or not local_path:
            raise SyncCompareError(
                ErrorCode.INVALID_INPUT, "Both remotePath and localPath are required"
            )
        if not await path_exists(local_path):
            raise SyncCompareError(
                ErrorCode.LOCAL_PATH_NOT_FOUND, f"Local path does not exist: {local_path}"
            )

        if force_direct:
            return await self._compare_direct(remote_path, local_path)

        local_bytes, local_entry = await self._resolve_local(local_path)
        local_side = LocalSide(
            bytes=local_bytes,
            formatted=format_bytes(local_bytes),
            cached_at=local_entry.timestamp if local_entry else None,
        )
        last_modified, last_modified_formatted = self._last_modified(local_path)

        remote_entry = self._remote_store.get(remote_path)
        if remote_entry is None:
            log.info("remote_cache_miss", remote=remote_path)
            status = self._remote_store.status()
            return CacheMissOutput(
                message=(
                    f'Remote path "{remote_path}" not found in cache. Use /api/cache/refresh '
                    "to update the cache or set forceDirect=true in your request to fetch directly."
                ),
                remote_path=remote_path,
                local_path=local_path,
                last_modified=last_modified,
                last_modified_formatted=last_modified_formatted,
                local=local_side,
                cache_status=MissCacheStatus(
                    last_full_update=status.last_updated,
                    update_in_progress=status.in_progress,
                    update_start_time=status.started_at,
                ),
            )

        log.debug("remote_cache_hit", remote=remote_path, cached_at=remote_entry.timestamp)
        return self._build_comparison(
            remote_path=remote_path,
            local_path=local_path,
            remote_side=RemoteSide(
                bytes=remote_entry.bytes,
                formatted=format_bytes(remote_entry.bytes),
                count=remote_entry.count,
                cached_at=remote_entry.timestamp,
            ),
            local_side=local_side,
            last_modified=last_modified,
            last_modified_formatted=last_modified_formatted,
        )

    async def _compare_direct(self, remote_path: str, local_path: str) -> ComparisonOutput:
        """Live probes of both sides; neither cache nor history is touched."""
        log.info("direct_compare", remote=remote_path, path=local_path)
        remote_size = await self._remote_probe.measure(remote_path)
        try:
            local_bytes = await self._local_probe.measure(local_path)
        except OSError as e:
            raise SyncCompareError(
                ErrorCode.PROBE_FAILED, f"Failed to measure {local_path}: {e}"
            ) from e
        last_modified, last_modified_formatted = self._last_modified(local_path)
        return self._build_comparison(
            remote_path=remote_path,
            local_path=local_path,
            remote_side=RemoteSide(
                bytes=remote_size.bytes,
                formatted=format_bytes(remote_size.bytes),
                count=remote_size.count,
                cached_at=None,
            ),
            local_side=LocalSide(
                bytes=local_bytes, formatted=format_bytes(local_bytes), cached_at=None
            ),
            last_modified=last_modified,
            last_modified_formatted=last_modified_formatted,
        )

    def _build_comparison(
        self,
        *,
        remote_path: str,
        local_path: str,
        remote_side: RemoteSide,
        local_side: LocalSide,
        last_modified: datetime | None,
        last_modified_formatted: str | None,
    ) -> ComparisonOutput:
        difference = remote_side.bytes - local_side.bytes
        return ComparisonOutput(
            timestamp=utc_now(),
            remote_path=remote_path,
            local_path=local_path,
            last_modified=last_modified,
            last_modified_formatted=last_modified_formatted,
            remote=remote_side,
            local=local_side,
            difference=Difference(
                bytes=difference,
                formatted=format_bytes(abs(difference)),
                direction=sync_direction(difference),
            ),
            sync_status=SyncStatus(
                percentage_synced=percentage_synced(remote_side.bytes, local_side.bytes),
                is_synced=difference == 0,
            ),
            cache_status=CompareCacheStatus(
                remote_last_update=self._remote_store.last_updated,
                local_last_update=self._local_store.last_updated,
            ),
        )
