"""Periodic and manual triggering of refresh cycles.

Each store has its own timer loop. A trigger that finds a cycle already
running for its store is dropped, never queued.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from synccompare.cache import CacheStore
    from synccompare.refresh import RefreshCoordinator

log = structlog.get_logger()

_HOUR = 3600.0


class Scheduler:
    def __init__(
        self,
        *,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        local_store: CacheStore,
        remote_interval_seconds: float = 24 * _HOUR,
        local_interval_seconds: float = 1 * _HOUR,
    ) -> None:
        self._coordinator = coordinator
        self._remote_store = remote_store
        self._local_store = local_store
        self._remote_interval = remote_interval_seconds
        self._local_interval = local_interval_seconds
        self._stop_event = asyncio.Event()
        self._loops: list[asyncio.Task[None]] = []
        # Strong references so in-flight cycles are not garbage collected
        self._cycles: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _launch(self, name: str, cycle: Callable[[], Coroutine[Any, Any, None]]) -> None:
        task = asyncio.create_task(cycle(), name=f"{name}-refresh")
        self._cycles.add(task)
        task.add_done_callback(self._cycle_finished)

    def _cycle_finished(self, task: asyncio.Task[None]) -> None:
        self._cycles.discard(task)
        try:
            task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            log.exception("refresh_cycle_failed", task=task.get_name())

    def trigger_remote(self) -> bool:
        """Start a remote cycle unless one is running. Returns whether it started."""
        if not self._remote_store.begin_refresh():
            log.info(
                "remote_refresh_already_running",
                started_at=self._remote_store.refresh_started_at,
            )
            return False
        self._launch("remote", self._coordinator.run_remote_cycle)
        return True

    def trigger_local(self) -> bool:
        """Start a local cycle unless one is running or nothing is tracked."""
        if len(self._local_store) == 0:
            log.info("local_refresh_skipped", reason="no tracked directories")
            return False
        if not self._local_store.begin_refresh():
            log.info(
                "local_refresh_already_running",
                started_at=self._local_store.refresh_started_at,
            )
            return False
        self._launch("local", self._coordinator.run_local_cycle)
        return True

    def trigger_all(self) -> tuple[bool, bool]:
        """Manual refresh: fire both triggers and return without waiting."""
        log.info("manual_refresh_requested")
        return self.trigger_remote(), self.trigger_local()

    # ------------------------------------------------------------------
    # Timer loops
    # ------------------------------------------------------------------

    def start(self, *, run_immediately: bool = True) -> None:
        if self._loops:
            return
        self._stop_event.clear()
        if run_immediately:
            log.info("initial_refresh_scheduled")
            self.trigger_remote()
            self.trigger_local()
        else:
            log.info("initial_refresh_skipped")
        self._loops = [
            asyncio.create_task(self._timer_loop("remote", self._remote_interval, self.trigger_remote)),
            asyncio.create_task(self._timer_loop("local", self._local_interval, self.trigger_local)),
        ]
        log.info(
            "scheduler_started",
            remote_interval_s=self._remote_interval,
            local_interval_s=self._local_interval,
        )

    async def stop(self) -> None:
        if not self._loops:
            return
        self._stop_event.set()
        await asyncio.gather(*self._loops)
        self._loops = []

        pending = list(self._cycles)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("scheduler_stopped", cancelled_cycles=len(pending))

    async def _timer_loop(self, name: str, interval: float, trigger: Callable[[], bool]) -> None:
        next_run = time.monotonic() + interval
        while not self._stop_event.is_set():
            timeout = max(0.0, next_run - time.monotonic())
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            except TimeoutError:
                log.info("scheduled_refresh_due", store=name)
                try:
                    trigger()
                except Exception:
                    log.exception("scheduled_refresh_trigger_failed", store=name)
                now = time.monotonic()
                next_run += interval
                if next_run < now:
                    # Fell behind (suspended host); skip missed periods
                    next_run = now + interval
