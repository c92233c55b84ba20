"""Shared fixtures: in-memory stores and scriptable probe doubles."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from synccompare.cache import CacheStore
from synccompare.errors import ErrorCode, SyncCompareError
from synccompare.history import HistoryTracker
from synccompare.models.cache import RemoteSize
from synccompare.refresh import RefreshCoordinator


class FakeRemoteProbe:
    """Remote probe whose listing and sizes are set by the test."""

    def __init__(self, sizes: dict[str, RemoteSize] | None = None) -> None:
        self.sizes: dict[str, RemoteSize] = dict(sizes or {})
        self.failing: set[str] = set()
        self.listing_error: str | None = None
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None

    async def list_remotes(self) -> list[str]:
        if self.listing_error is not None:
            raise SyncCompareError(ErrorCode.LISTING_FAILED, self.listing_error)
        return [key.removesuffix(":") for key in self.sizes]

    async def measure(self, remote_path: str) -> RemoteSize:
        self.calls.append(remote_path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if remote_path in self.failing or remote_path not in self.sizes:
                raise SyncCompareError(ErrorCode.PROBE_FAILED, f"directory not found: {remote_path}")
            return self.sizes[remote_path]
        finally:
            self.in_flight -= 1


class FakeLocalProbe:
    """Local probe returning scripted sizes; unscripted paths raise ``OSError``."""

    def __init__(self, sizes: dict[str, int] | None = None) -> None:
        self.sizes: dict[str, int] = dict(sizes or {})
        self.failures: dict[str, int] = {}  # path -> number of calls that should fail
        self.calls: list[str] = []

    async def measure(self, path: str) -> int:
        self.calls.append(path)
        await asyncio.sleep(0)
        remaining = self.failures.get(path, 0)
        if remaining:
            self.failures[path] = remaining - 1
            raise PermissionError(13, "Permission denied", path)
        if path not in self.sizes:
            raise FileNotFoundError(2, "No such file or directory", path)
        return self.sizes[path]


@pytest.fixture()
def remote_store() -> CacheStore:
    return CacheStore("remote")


@pytest.fixture()
def local_store() -> CacheStore:
    return CacheStore("local")


@pytest.fixture()
def history() -> HistoryTracker:
    return HistoryTracker()


@pytest.fixture()
def remote_probe() -> FakeRemoteProbe:
    return FakeRemoteProbe(
        {
            "gdrive:": RemoteSize(bytes=5368709120, count=1200),
            "b2:": RemoteSize(bytes=1024, count=3),
        }
    )


@pytest.fixture()
def remote_probe_factory() -> type[FakeRemoteProbe]:
    return FakeRemoteProbe


@pytest.fixture()
def local_probe() -> FakeLocalProbe:
    return FakeLocalProbe()


@pytest.fixture()
def local_dir(tmp_path: Path) -> Path:
    """A real directory so existence checks pass."""
    path = tmp_path / "photos"
    path.mkdir()
    return path


@pytest.fixture()
def coordinator(
    remote_store: CacheStore,
    local_store: CacheStore,
    history: HistoryTracker,
    remote_probe: FakeRemoteProbe,
    local_probe: FakeLocalProbe,
) -> RefreshCoordinator:
    return RefreshCoordinator(
        remote_store=remote_store,
        local_store=local_store,
        history=history,
        remote_probe=remote_probe,
        local_probe=local_probe,
    )
