"""Per-directory size history used to infer when a directory last changed.

Each tracked local path keeps an ordered list of ``(timestamp, bytes)``
samples. A sample is only recorded when the byte count differs from the
previous one, and samples older than the retention window (measured from the
newest sample) are dropped after every append.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from synccompare.models.cache import SizeSample

DEFAULT_RETENTION = timedelta(days=30)


def truncate_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


class HistoryTracker:
    def __init__(
        self,
        retention: timedelta = DEFAULT_RETENTION,
        initial: Mapping[str, Iterable[SizeSample]] | None = None,
    ) -> None:
        self._retention = retention
        self._records: dict[str, list[SizeSample]] = {}
        for path, samples in (initial or {}).items():
            self._records[path] = [SizeSample(*sample) for sample in samples]

    def append(self, path: str, timestamp: datetime, num_bytes: int) -> bool:
        """Record a measurement. Returns ``True`` if a new sample was stored."""
        record = self._records.setdefault(path, [])
        appended = False
        if not record or record[-1].bytes != num_bytes:
            record.append(SizeSample(timestamp, num_bytes))
            appended = True

        cutoff = record[-1].timestamp - self._retention
        record[:] = [sample for sample in record if sample.timestamp >= cutoff]
        return appended

    def last_changed(self, path: str) -> datetime | None:
        """Hour-truncated time of the most recent size change.

        Falls back to the oldest sample when no change has been observed.
        """
        record = self._records.get(path)
        if not record:
            return None

        for i in range(len(record) - 1, 0, -1):
            if record[i].bytes != record[i - 1].bytes:
                return truncate_to_hour(record[i].timestamp)
        return truncate_to_hour(record[0].timestamp)

    def samples(self, path: str) -> tuple[SizeSample, ...]:
        return tuple(self._records.get(path, ()))

    def forget(self, path: str) -> bool:
        return self._records.pop(path, None) is not None

    def __contains__(self, path: object) -> bool:
        return path in self._records
