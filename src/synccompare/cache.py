"""In-memory size cache with atomic snapshot replacement.

One ``CacheStore`` holds the remote sizes and another the local directory
sizes. Readers always see a complete mapping: a refresh cycle builds its new
snapshot off to the side and ``publish_snapshot`` swaps the whole dict in a
single assignment.

All methods are synchronous. Under asyncio no other task can run between the
check and the set in ``begin_refresh``, which is what keeps two refresh
cycles for the same store from overlapping.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from synccompare.models.cache import RefreshStatus

if TYPE_CHECKING:
    from synccompare.models.cache import CacheEntry

log = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


class CacheStore:
    """Key → ``CacheEntry`` snapshot plus refresh bookkeeping for one store."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[str, CacheEntry] = {}
        self._last_updated: datetime | None = None
        self._refresh_in_progress = False
        self._refresh_started_at: datetime | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def has(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def snapshot(self) -> dict[str, CacheEntry]:
        """Return a shallow copy of the current snapshot."""
        return dict(self._entries)

    def items(self) -> Iterator[tuple[str, CacheEntry]]:
        """Iterate over the snapshot current at call time."""
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def last_updated(self) -> datetime | None:
        return self._last_updated

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_in_progress

    @property
    def refresh_started_at(self) -> datetime | None:
        return self._refresh_started_at

    def status(self) -> RefreshStatus:
        return RefreshStatus(
            last_updated=self._last_updated,
            in_progress=self._refresh_in_progress,
            started_at=self._refresh_started_at,
        )

    # ------------------------------------------------------------------
    # Refresh protocol
    # ------------------------------------------------------------------

    def begin_refresh(self) -> bool:
        """Claim the store for a refresh cycle.

        Returns ``False`` without touching any state when a cycle is already
        running.
        """
        if self._refresh_in_progress:
            return False
        self._refresh_in_progress = True
        self._refresh_started_at = utc_now()
        return True

    def publish_snapshot(self, entries: Mapping[str, CacheEntry]) -> None:
        """Replace the whole snapshot and release the refresh claim."""
        self._entries = dict(entries)
        self._last_updated = utc_now()
        self.end_refresh()
        log.debug("cache_snapshot_published", store=self.name, entries=len(self._entries))

    def end_refresh(self) -> None:
        """Release the refresh claim without changing the snapshot. Idempotent."""
        self._refresh_in_progress = False
        self._refresh_started_at = None

    # ------------------------------------------------------------------
    # Single-key writes outside a cycle
    # ------------------------------------------------------------------

    def patch(self, key: str, entry: CacheEntry) -> None:
        """Insert or overwrite one key.

        Not coordinated with an in-flight refresh: a cycle that copied the
        snapshot before this call will drop the patch when it publishes.
        """
        self._entries[key] = entry

    def remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None
