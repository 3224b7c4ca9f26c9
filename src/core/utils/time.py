"""
Time helpers.

Avatar records carry an `updated_at` stamp written by the finalize step; it is
always UTC ISO-8601 so profile readers can compare stamps as strings.
"""

from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Return current UTC time in ISO-8601 format.

    Example:
        2024-01-15T10:42:31.123456+00:00
    """
    return datetime.now(timezone.utc).isoformat()


def elapsed_ms(started: float, finished: float) -> int:
    """Convert two monotonic clock readings into whole milliseconds."""
    return max(0, int((finished - started) * 1000))
