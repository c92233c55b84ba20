from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from synccompare.cache import CacheStore
from synccompare.compare import CompareEngine
from synccompare.config import Settings
from synccompare.history import HistoryTracker
from synccompare.probes import DirectorySizeProbe, RcloneProbe
from synccompare.protocols import LocalSizeProbe, RemoteSizeProbe
from synccompare.refresh import RefreshCoordinator
from synccompare.scheduler import Scheduler


@dataclass
class AppState:
    """Everything one running service owns. Built once at startup."""

    settings: Settings
    remote_store: CacheStore
    local_store: CacheStore
    history: HistoryTracker
    coordinator: RefreshCoordinator
    scheduler: Scheduler
    engine: CompareEngine


def build_state(
    settings: Settings,
    *,
    remote_probe: RemoteSizeProbe | None = None,
    local_probe: LocalSizeProbe | None = None,
) -> AppState:
    if remote_probe is None:
        remote_probe = RcloneProbe(
            binary=settings.rclone.binary,
            timeout_seconds=settings.rclone.timeout_seconds,
        )
    if local_probe is None:
        local_probe = DirectorySizeProbe()

    remote_store = CacheStore("remote")
    local_store = CacheStore("local")
    history = HistoryTracker(retention=timedelta(days=settings.cache.history_retention_days))

    coordinator = RefreshCoordinator(
        remote_store=remote_store,
        local_store=local_store,
        history=history,
        remote_probe=remote_probe,
        local_probe=local_probe,
        probe_concurrency=settings.cache.probe_concurrency,
        prune_missing_remotes=settings.cache.prune_missing_remotes,
    )
    scheduler = Scheduler(
        coordinator=coordinator,
        remote_store=remote_store,
        local_store=local_store,
        remote_interval_seconds=settings.cache.remote_refresh_interval_hours * 3600,
        local_interval_seconds=settings.cache.local_refresh_interval_hours * 3600,
    )
    engine = CompareEngine(
        remote_store=remote_store,
        local_store=local_store,
        history=history,
        remote_probe=remote_probe,
        local_probe=local_probe,
    )
    return AppState(
        settings=settings,
        remote_store=remote_store,
        local_store=local_store,
        history=history,
        coordinator=coordinator,
        scheduler=scheduler,
        engine=engine,
    )
