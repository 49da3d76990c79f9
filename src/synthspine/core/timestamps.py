"""
Epoch-millisecond timestamp utilities (stdlib-only).

Event times, tag and entity expirations are all carried as integer epoch
milliseconds so arithmetic with TTLs is exact and comparisons are cheap.
These helpers convert at the edges (wire input, CLI output).
"""

import time
from datetime import UTC, datetime


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def to_ms(value: int | float | str | datetime) -> int:
    """
    Coerce a wire timestamp to epoch milliseconds.

    Accepts integers (ms), floats (ms), numeric strings, ISO-8601 strings and
    datetimes. Naive datetimes are taken as UTC.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=UTC)
        return int(dt.timestamp() * 1000)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        return to_ms(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise ValueError(f"Not a timestamp: {value!r}")


def to_iso8601(ms: int | None) -> str | None:
    """Convert epoch milliseconds to an ISO 8601 UTC string."""
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


class ManualClock:
    """
    Settable millisecond clock for replays and tests.

    Example:
        >>> clock = ManualClock(1_000)
        >>> clock.advance(500)
        1500
        >>> clock()
        1500
    """

    def __init__(self, start: int = 0):
        self._now = start

    def __call__(self) -> int:
        return self._now

    @property
    def now(self) -> int:
        return self._now

    def set(self, ms: int) -> int:
        self._now = ms
        return self._now

    def advance(self, ms: int) -> int:
        self._now += ms
        return self._now
