"""Unit tests for synccompare.refresh."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from synccompare.cache import utc_now
from synccompare.models.cache import CacheEntry, RemoteSize
from synccompare.refresh import RefreshCoordinator, remote_key

if TYPE_CHECKING:
    from pathlib import Path

    from synccompare.cache import CacheStore
    from synccompare.history import HistoryTracker
    from tests.conftest import FakeLocalProbe, FakeRemoteProbe


def _entry(num_bytes: int, **kwargs) -> CacheEntry:
    return CacheEntry(bytes=num_bytes, timestamp=datetime(2024, 1, 1, tzinfo=UTC), **kwargs)


def test_remote_key_appends_colon() -> None:
    assert remote_key("gdrive") == "gdrive:"


# ---------------------------------------------------------------------------
# Remote cycle
# ---------------------------------------------------------------------------


class TestRemoteCycle:
    async def test_one_entry_per_listed_remote(
        self, coordinator: RefreshCoordinator, remote_store: CacheStore
    ) -> None:
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()

        assert sorted(remote_store.keys()) == ["b2:", "gdrive:"]
        entry = remote_store.get("gdrive:")
        assert entry is not None
        assert entry.bytes == 5368709120
        assert entry.count == 1200
        assert entry.probe_duration_ms >= 0
        assert entry.error is None
        assert remote_store.last_updated is not None
        assert remote_store.refresh_in_progress is False

    async def test_failed_probe_keeps_previous_entry(
        self,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        remote_probe: FakeRemoteProbe,
    ) -> None:
        previous = _entry(42, count=1)
        remote_store.patch("b2:", previous)
        remote_probe.failing.add("b2:")

        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()

        assert remote_store.get("b2:") == previous
        assert remote_store.has("gdrive:")

    async def test_failed_probe_without_previous_entry_is_absent(
        self,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        remote_probe: FakeRemoteProbe,
    ) -> None:
        remote_probe.failing.add("b2:")
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()
        assert not remote_store.has("b2:")
        assert remote_store.has("gdrive:")

    async def test_listing_failure_leaves_snapshot_unchanged(
        self,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        remote_probe: FakeRemoteProbe,
    ) -> None:
        remote_store.patch("old:", _entry(7))
        remote_probe.listing_error = "rclone: config file not found"

        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()

        assert remote_store.keys() == ["old:"]
        assert remote_store.last_updated is None
        assert remote_store.refresh_in_progress is False
        assert remote_probe.calls == []

    async def test_unlisted_remote_is_kept_by_default(
        self, coordinator: RefreshCoordinator, remote_store: CacheStore
    ) -> None:
        remote_store.patch("removed:", _entry(7))
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()
        assert remote_store.has("removed:")

    async def test_unlisted_remote_is_pruned_when_enabled(
        self,
        remote_store: CacheStore,
        local_store: CacheStore,
        history: HistoryTracker,
        remote_probe: FakeRemoteProbe,
        local_probe: FakeLocalProbe,
    ) -> None:
        coordinator = RefreshCoordinator(
            remote_store=remote_store,
            local_store=local_store,
            history=history,
            remote_probe=remote_probe,
            local_probe=local_probe,
            prune_missing_remotes=True,
        )
        remote_store.patch("removed:", _entry(7))
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()
        assert not remote_store.has("removed:")
        assert sorted(remote_store.keys()) == ["b2:", "gdrive:"]

    async def test_unexpected_error_skips_only_that_remote(
        self,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        remote_probe: FakeRemoteProbe,
    ) -> None:
        previous = _entry(42, count=1)
        remote_store.patch("gdrive:", previous)
        real_measure = remote_probe.measure

        async def flaky(remote_path: str) -> RemoteSize:
            if remote_path == "gdrive:":
                raise ValueError("invalid literal for int() with base 10: 'n/a'")
            return await real_measure(remote_path)

        remote_probe.measure = flaky  # type: ignore[method-assign]
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()

        assert remote_store.get("gdrive:") == previous
        entry = remote_store.get("b2:")
        assert entry is not None and entry.bytes == 1024
        assert remote_store.last_updated is not None
        assert remote_store.refresh_in_progress is False
        assert remote_store.begin_refresh() is True

    async def test_unexpected_listing_error_releases_claim(
        self,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        remote_probe: FakeRemoteProbe,
    ) -> None:
        async def broken() -> list[str]:
            raise RuntimeError("boom")

        remote_probe.list_remotes = broken  # type: ignore[method-assign]
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()
        assert remote_store.last_updated is None
        assert remote_store.refresh_in_progress is False

    async def test_no_probe_outlives_the_cycle(
        self,
        remote_store: CacheStore,
        local_store: CacheStore,
        history: HistoryTracker,
        local_probe: FakeLocalProbe,
        remote_probe_factory: type[FakeRemoteProbe],
    ) -> None:
        probe = remote_probe_factory({f"r{i}:": RemoteSize(bytes=i, count=i) for i in range(4)})
        real_measure = probe.measure

        async def flaky(remote_path: str) -> RemoteSize:
            if remote_path == "r0:":
                raise TypeError("unsupported operand")
            return await real_measure(remote_path)

        probe.measure = flaky  # type: ignore[method-assign]
        coordinator = RefreshCoordinator(
            remote_store=remote_store,
            local_store=local_store,
            history=history,
            remote_probe=probe,
            local_probe=local_probe,
            probe_concurrency=2,
        )
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()

        assert probe.in_flight == 0
        assert sorted(probe.calls) == ["r1:", "r2:", "r3:"]
        assert sorted(remote_store.keys()) == ["r1:", "r2:", "r3:"]

    async def test_probes_are_sequential_by_default(
        self, coordinator: RefreshCoordinator, remote_store: CacheStore, remote_probe: FakeRemoteProbe
    ) -> None:
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()
        assert remote_probe.max_in_flight == 1
        assert remote_probe.calls == ["gdrive:", "b2:"]

    async def test_probe_concurrency_is_bounded(
        self,
        remote_store: CacheStore,
        local_store: CacheStore,
        history: HistoryTracker,
        local_probe: FakeLocalProbe,
        remote_probe_factory: type[FakeRemoteProbe],
    ) -> None:
        probe = remote_probe_factory({f"r{i}:": RemoteSize(bytes=i, count=i) for i in range(5)})
        coordinator = RefreshCoordinator(
            remote_store=remote_store,
            local_store=local_store,
            history=history,
            remote_probe=probe,
            local_probe=local_probe,
            probe_concurrency=2,
        )
        remote_store.begin_refresh()
        await coordinator.run_remote_cycle()
        assert probe.max_in_flight == 2
        assert len(remote_store) == 5

    async def test_readers_see_old_snapshot_until_publish(
        self,
        coordinator: RefreshCoordinator,
        remote_store: CacheStore,
        remote_probe: FakeRemoteProbe,
    ) -> None:
        remote_store.patch("gdrive:", _entry(1))
        remote_probe.gate = asyncio.Event()

        remote_store.begin_refresh()
        task = asyncio.create_task(coordinator.run_remote_cycle())
        await asyncio.sleep(0.01)

        entry = remote_store.get("gdrive:")
        assert entry is not None and entry.bytes == 1
        assert remote_store.refresh_in_progress is True

        remote_probe.gate.set()
        await task
        entry = remote_store.get("gdrive:")
        assert entry is not None and entry.bytes == 5368709120


# ---------------------------------------------------------------------------
# Local cycle
# ---------------------------------------------------------------------------


class TestLocalCycle:
    async def test_empty_store_is_noop(
        self, coordinator: RefreshCoordinator, local_store: CacheStore, local_probe: FakeLocalProbe
    ) -> None:
        local_store.begin_refresh()
        await coordinator.run_local_cycle()
        assert local_probe.calls == []
        assert local_store.last_updated is None
        assert local_store.refresh_in_progress is False

    async def test_updates_entry_and_history(
        self,
        coordinator: RefreshCoordinator,
        local_store: CacheStore,
        local_probe: FakeLocalProbe,
        history: HistoryTracker,
        local_dir: Path,
    ) -> None:
        path = str(local_dir)
        local_store.patch(path, _entry(100))
        history.append(path, utc_now() - timedelta(hours=1), 100)
        local_probe.sizes[path] = 250

        local_store.begin_refresh()
        await coordinator.run_local_cycle()

        entry = local_store.get(path)
        assert entry is not None
        assert entry.bytes == 250
        assert entry.count is None
        assert entry.error is None
        assert [s.bytes for s in history.samples(path)] == [100, 250]
        assert local_store.last_updated is not None

    async def test_unchanged_size_adds_no_history(
        self,
        coordinator: RefreshCoordinator,
        local_store: CacheStore,
        local_probe: FakeLocalProbe,
        history: HistoryTracker,
        local_dir: Path,
    ) -> None:
        path = str(local_dir)
        local_store.patch(path, _entry(100))
        history.append(path, utc_now() - timedelta(hours=1), 100)
        local_probe.sizes[path] = 100

        local_store.begin_refresh()
        await coordinator.run_local_cycle()
        assert len(history.samples(path)) == 1

    async def test_missing_directory_is_marked_and_survives_publish(
        self,
        coordinator: RefreshCoordinator,
        local_store: CacheStore,
        local_probe: FakeLocalProbe,
        tmp_path: Path,
    ) -> None:
        gone = str(tmp_path / "deleted")
        local_store.patch(gone, _entry(100))

        local_store.begin_refresh()
        await coordinator.run_local_cycle()

        entry = local_store.get(gone)
        assert entry is not None
        assert entry.error == "Directory no longer exists"
        assert entry.bytes == 100
        assert local_probe.calls == []

    async def test_probe_failure_is_marked_and_cycle_continues(
        self,
        coordinator: RefreshCoordinator,
        local_store: CacheStore,
        local_probe: FakeLocalProbe,
        tmp_path: Path,
    ) -> None:
        broken = tmp_path / "broken"
        healthy = tmp_path / "healthy"
        broken.mkdir()
        healthy.mkdir()
        local_store.patch(str(broken), _entry(10))
        local_store.patch(str(healthy), _entry(20))
        local_probe.failures[str(broken)] = 1
        local_probe.sizes[str(healthy)] = 30

        local_store.begin_refresh()
        await coordinator.run_local_cycle()

        broken_entry = local_store.get(str(broken))
        assert broken_entry is not None
        assert broken_entry.bytes == 10
        assert broken_entry.error is not None
        assert "Permission denied" in broken_entry.error

        healthy_entry = local_store.get(str(healthy))
        assert healthy_entry is not None
        assert healthy_entry.bytes == 30

    async def test_unexpected_error_is_marked_and_cycle_continues(
        self,
        coordinator: RefreshCoordinator,
        local_store: CacheStore,
        local_probe: FakeLocalProbe,
        tmp_path: Path,
    ) -> None:
        deep = tmp_path / "deep"
        healthy = tmp_path / "healthy"
        deep.mkdir()
        healthy.mkdir()
        local_store.patch(str(deep), _entry(10))
        local_store.patch(str(healthy), _entry(20))
        local_probe.sizes[str(healthy)] = 30
        real_measure = local_probe.measure

        async def flaky(path: str) -> int:
            if path == str(deep):
                raise RecursionError("maximum recursion depth exceeded")
            return await real_measure(path)

        local_probe.measure = flaky  # type: ignore[method-assign]
        local_store.begin_refresh()
        await coordinator.run_local_cycle()

        deep_entry = local_store.get(str(deep))
        assert deep_entry is not None
        assert deep_entry.bytes == 10
        assert deep_entry.error is not None
        assert "maximum recursion depth" in deep_entry.error
        healthy_entry = local_store.get(str(healthy))
        assert healthy_entry is not None and healthy_entry.bytes == 30
        assert local_store.refresh_in_progress is False

    async def test_successful_probe_clears_error(
        self,
        coordinator: RefreshCoordinator,
        local_store: CacheStore,
        local_probe: FakeLocalProbe,
        local_dir: Path,
    ) -> None:
        path = str(local_dir)
        local_store.patch(path, _entry(10, error="Directory no longer exists"))
        local_probe.sizes[path] = 10

        local_store.begin_refresh()
        await coordinator.run_local_cycle()

        entry = local_store.get(path)
        assert entry is not None
        assert entry.error is None
