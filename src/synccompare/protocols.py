from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from synccompare.models.cache import RemoteSize


class RemoteSizeProbe(Protocol):
    async def list_remotes(self) -> list[str]:
        """Names of all configured remotes, without the trailing colon.

        Raises ``SyncCompareError(LISTING_FAILED)`` when enumeration fails.
        """
        ...

    async def measure(self, remote_path: str) -> RemoteSize:
        """Size of one remote path. Raises ``SyncCompareError(PROBE_FAILED)``."""
        ...


class LocalSizeProbe(Protocol):
    async def measure(self, path: str) -> int:
        """Total bytes of regular files under ``path``. Raises ``OSError``."""
        ...
