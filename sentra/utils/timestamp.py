"""Timestamp helpers for event payloads, registries and CLI output."""

import time
from datetime import datetime

# (seconds per unit, suffix), largest first
_RELATIVE_UNITS = ((86400, "d"), (3600, "h"), (60, "m"), (1, "s"))


def now_exact() -> str:
    """Current local time as ISO 8601 with microseconds."""
    return datetime.now().isoformat()


def now_ms() -> int:
    """Current time as integer epoch milliseconds (event payload `ts`)."""
    return int(time.time() * 1000)


def session_stamp() -> str:
    """Compact local timestamp for log file names (e.g., 20261017_094512)."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def format_timestamp(iso_timestamp: str, relative: bool = False) -> str:
    """
    Render an ISO 8601 timestamp for humans.

    Args:
        iso_timestamp: Timestamp as written by now_exact()
        relative: Show "5m ago" instead of "2026-10-13 18:45:40"

    Returns:
        Formatted timestamp, or the input unchanged if it cannot be parsed
    """
    try:
        dt = datetime.fromisoformat(iso_timestamp)
    except (ValueError, TypeError):
        return iso_timestamp

    if not relative:
        return dt.strftime("%Y-%m-%d %H:%M:%S")

    seconds = int((datetime.now() - dt).total_seconds())
    suffix = "ago" if seconds >= 0 else "from now"
    seconds = abs(seconds)
    for unit_seconds, unit in _RELATIVE_UNITS:
        if seconds >= unit_seconds or unit == "s":
            return f"{seconds // unit_seconds}{unit} {suffix}"
