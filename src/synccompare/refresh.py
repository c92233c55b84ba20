"""Refresh cycles for the remote and local caches.

A cycle copies the store's current snapshot, probes every key into that copy
and publishes the copy in one step at the end. Entries whose probe fails, for
any reason, keep their previous value and never abort the cycle. Probes
within a cycle are bounded by a semaphore; the default bound of 1 makes them
strictly sequential.

Callers claim the store with ``CacheStore.begin_refresh()`` before launching
a cycle; every cycle releases the claim on exit, however it exits.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

import structlog

from synccompare.cache import utc_now
from synccompare.errors import SyncCompareError
from synccompare.formatting import format_bytes
from synccompare.models.cache import CacheEntry
from synccompare.probes import path_exists

if TYPE_CHECKING:
    from synccompare.cache import CacheStore
    from synccompare.history import HistoryTracker
    from synccompare.protocols import LocalSizeProbe, RemoteSizeProbe

log = structlog.get_logger()


def remote_key(name: str) -> str:
    """Cache key for a listed remote: the remote root, ``name:``."""
    return f"{name}:"


class RefreshCoordinator:
    def __init__(
        self,
        *,
        remote_store: CacheStore,
        local_store: CacheStore,
        history: HistoryTracker,
        remote_probe: RemoteSizeProbe,
        local_probe: LocalSizeProbe,
        probe_concurrency: int = 1,
        prune_missing_remotes: bool = False,
    ) -> None:
        self._remote_store = remote_store
        self._local_store = local_store
        self._history = history
        self._remote_probe = remote_probe
        self._local_probe = local_probe
        self._probe_concurrency = max(1, probe_concurrency)
        self._prune_missing_remotes = prune_missing_remotes

    async def _probe_each(
        self, keys: Iterable[str], probe_one: Callable[[str], Awaitable[None]]
    ) -> None:
        semaphore = asyncio.Semaphore(self._probe_concurrency)

        async def _bounded(key: str) -> None:
            async with semaphore:
                await probe_one(key)

        await asyncio.gather(*(_bounded(key) for key in keys))

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    async def run_remote_cycle(self) -> None:
        store = self._remote_store
        started = time.monotonic()
        try:
            log.info("remote_refresh_started")
            try:
                names = await self._remote_probe.list_remotes()
            except SyncCompareError as e:
                log.error("remote_listing_failed", error=e.message)
                return
            except Exception:
                log.exception("remote_listing_failed")
                return

            keys = [remote_key(name) for name in names]
            log.info("remote_listing_completed", remotes=len(keys), names=names)

            working = store.snapshot()
            if self._prune_missing_remotes:
                listed = set(keys)
                working = {k: v for k, v in working.items() if k in listed}

            total = len(keys)
            position = {key: i for i, key in enumerate(keys, start=1)}

            async def probe_remote(key: str) -> None:
                log.info("remote_probe_started", remote=key, position=position[key], total=total)
                probe_started = time.monotonic()
                try:
                    size = await self._remote_probe.measure(key)
                except SyncCompareError as e:
                    log.error(
                        "remote_probe_failed",
                        remote=key,
                        error=e.message,
                        duration_s=round(time.monotonic() - probe_started, 2),
                    )
                    return
                except Exception:
                    log.exception(
                        "remote_probe_failed",
                        remote=key,
                        duration_s=round(time.monotonic() - probe_started, 2),
                    )
                    return
                duration_ms = int((time.monotonic() - probe_started) * 1000)
                working[key] = CacheEntry(
                    bytes=size.bytes,
                    count=size.count,
                    timestamp=utc_now(),
                    probe_duration_ms=duration_ms,
                )
                log.info(
                    "remote_probe_completed",
                    remote=key,
                    size=format_bytes(size.bytes),
                    count=size.count,
                    duration_s=round(duration_ms / 1000, 2),
                )

            await self._probe_each(keys, probe_remote)
            store.publish_snapshot(working)
            log.info(
                "remote_refresh_completed",
                remotes=total,
                entries=len(store),
                duration_s=round(time.monotonic() - started, 2),
            )
        finally:
            store.end_refresh()

    # ------------------------------------------------------------------
    # Local
    # ------------------------------------------------------------------

    async def run_local_cycle(self) -> None:
        store = self._local_store
        started = time.monotonic()
        try:
            if len(store) == 0:
                log.info("local_refresh_skipped", reason="no tracked directories")
                return

            working = store.snapshot()
            paths = list(working)
            log.info("local_refresh_started", directories=len(paths))

            def mark_failed(path: str, message: str) -> None:
                # Kept in the working snapshot so the marker survives publication
                previous = working.get(path)
                if previous is None:
                    working[path] = CacheEntry(bytes=0, timestamp=utc_now(), error=message)
                else:
                    working[path] = previous.model_copy(
                        update={"error": message, "timestamp": utc_now()}
                    )

            async def probe_local(path: str) -> None:
                if not await path_exists(path):
                    log.error("local_directory_missing", path=path)
                    mark_failed(path, "Directory no longer exists")
                    return

                probe_started = time.monotonic()
                try:
                    size_bytes = await self._local_probe.measure(path)
                except OSError as e:
                    log.error(
                        "local_probe_failed",
                        path=path,
                        error=str(e),
                        duration_s=round(time.monotonic() - probe_started, 2),
                    )
                    mark_failed(path, str(e))
                    return
                except Exception as e:
                    log.exception(
                        "local_probe_failed",
                        path=path,
                        duration_s=round(time.monotonic() - probe_started, 2),
                    )
                    mark_failed(path, f"Size calculation failed: {e}")
                    return

                duration_ms = int((time.monotonic() - probe_started) * 1000)
                now = utc_now()
                working[path] = CacheEntry(
                    bytes=size_bytes,
                    timestamp=now,
                    probe_duration_ms=duration_ms,
                )
                self._history.append(path, now, size_bytes)
                log.info(
                    "local_probe_completed",
                    path=path,
                    size=format_bytes(size_bytes),
                    duration_s=round(duration_ms / 1000, 2),
                )

            await self._probe_each(paths, probe_local)
            store.publish_snapshot(working)
            log.info(
                "local_refresh_completed",
                directories=len(paths),
                duration_s=round(time.monotonic() - started, 2),
            )
        finally:
            store.end_refresh()
