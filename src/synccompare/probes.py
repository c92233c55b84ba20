"""Size probes: ``rclone`` for remotes, a recursive walk for local paths."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import structlog

from synccompare.errors import ErrorCode, SyncCompareError
from synccompare.models.cache import RemoteSize

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Remote
# ---------------------------------------------------------------------------


def parse_listremotes(output: str) -> list[str]:
    """Parse ``rclone listremotes`` output into bare remote names."""
    remotes = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        remotes.append(line.removesuffix(":"))
    return remotes


def parse_size_output(output: str) -> RemoteSize:
    """Parse ``rclone size --json`` output. Missing counters default to 0."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise SyncCompareError(
            ErrorCode.PROBE_FAILED, f"Failed to parse rclone output: {e}", recoverable=True
        ) from e
    if not isinstance(data, dict):
        raise SyncCompareError(
            ErrorCode.PROBE_FAILED,
            f"Failed to parse rclone output: expected an object, got {type(data).__name__}",
            recoverable=True,
        )
    return RemoteSize(bytes=int(data.get("bytes") or 0), count=int(data.get("count") or 0))


class RcloneProbe:
    """Runs the ``rclone`` binary as a subprocess (never through a shell)."""

    def __init__(self, binary: str = "rclone", timeout_seconds: float | None = None) -> None:
        self._binary = binary
        self._timeout = timeout_seconds

    async def _run(self, *args: str, code: ErrorCode) -> str:
        log.debug("rclone_exec", binary=self._binary, args=args)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SyncCompareError(code, f"Failed to start {self._binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise SyncCompareError(
                code,
                f"{self._binary} {' '.join(args)} timed out after {self._timeout}s",
                recoverable=True,
            ) from e

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise SyncCompareError(
                code,
                f"{self._binary} {' '.join(args)} exited with status {proc.returncode}: {detail}",
                recoverable=True,
            )
        return stdout.decode("utf-8", errors="replace")

    async def list_remotes(self) -> list[str]:
        output = await self._run("listremotes", code=ErrorCode.LISTING_FAILED)
        return parse_listremotes(output)

    async def measure(self, remote_path: str) -> RemoteSize:
        output = await self._run("size", remote_path, "--json", code=ErrorCode.PROBE_FAILED)
        return parse_size_output(output)


# ---------------------------------------------------------------------------
# Local
# ---------------------------------------------------------------------------


def directory_size(path: Path) -> int:
    """Sum the sizes of all regular files under ``path``.

    Symlinked directories are not followed. Any unreadable entry raises
    ``OSError`` and aborts the whole measurement.
    """
    if not path.is_dir():
        return path.stat().st_size

    total = 0
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                total += directory_size(Path(entry.path))
            elif entry.is_file():
                total += entry.stat().st_size
    return total


async def path_exists(path: str) -> bool:
    """``os.path.exists`` run in a worker thread."""
    return await asyncio.to_thread(os.path.exists, path)


class DirectorySizeProbe:
    """Measures local paths in a worker thread so the event loop stays free."""

    async def measure(self, path: str) -> int:
        return await asyncio.to_thread(directory_size, Path(path))
