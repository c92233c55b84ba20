"""Integration test fixtures.

Provides a fully wired AppState backed by the probe doubles from
tests/conftest.py and an httpx client talking to the ASGI app in-process.
The scheduler is not started; tests trigger refreshes explicitly.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import httpx
import pytest

from synccompare.config import Settings
from synccompare.server import create_app
from synccompare.state import AppState, build_state

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from tests.conftest import FakeLocalProbe, FakeRemoteProbe


@pytest.fixture()
def app_state(remote_probe: FakeRemoteProbe, local_probe: FakeLocalProbe) -> AppState:
    settings = Settings(logging={"file_path": ""})  # type: ignore[arg-type]
    return build_state(settings, remote_probe=remote_probe, local_probe=local_probe)


@pytest.fixture()
async def client(app_state: AppState) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(app_state)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Environment for running the server as a subprocess without touching user dirs."""
    env = os.environ.copy()
    env["SYNCCOMPARE__LOGGING__FILE_PATH"] = str(tmp_path / "logs" / "cache.log")
    return env
