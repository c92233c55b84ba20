"""Human-readable renderings of byte counts, durations and timestamps."""

from __future__ import annotations

from datetime import datetime

_UNITS = ("Bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")
_K = 1024


def format_bytes(num_bytes: int, decimals: int = 2) -> str:
    """Render a byte count with binary (1024-based) units.

    Trailing zeros are dropped: ``1649267441664`` renders as ``"1.5 TB"``.
    """
    if num_bytes == 0:
        return "0 Bytes"

    sign = "-" if num_bytes < 0 else ""
    value = float(abs(num_bytes))
    unit = 0
    while value >= _K and unit < len(_UNITS) - 1:
        value /= _K
        unit += 1

    text = f"{value:.{decimals}f}".rstrip("0").rstrip(".") if decimals > 0 else f"{value:.0f}"
    return f"{sign}{text} {_UNITS[unit]}"


def format_duration(duration_ms: int | None) -> str | None:
    if duration_ms is None:
        return None
    return f"{duration_ms / 1000:.2f}s"


def format_local_datetime(value: datetime | None) -> str | None:
    """Render ``value`` as ``DD/MM/YY H{AM|PM}`` in the host time zone."""
    if value is None:
        return None
    local = value.astimezone()
    hour = local.hour % 12 or 12
    meridiem = "PM" if local.hour >= 12 else "AM"
    return f"{local:%d/%m/%y} {hour}{meridiem}"
