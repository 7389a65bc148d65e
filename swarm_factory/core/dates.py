"""Timestamp helpers.

Every persisted timestamp is an ISO-8601 UTC string with millisecond
precision and a `Z` suffix (`2026-10-19T07:37:01.123Z`). That fixed width is
what makes lexical order equal chronological order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_iso(value: datetime) -> str:
    """Format a datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ`."""
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MonotonicClock:
    """UTC clock whose readings strictly increase within one process.

    Readings are truncated to milliseconds. When the wall clock has not moved
    past the previous reading (same millisecond, or a step backwards), the new
    reading is the previous one plus one millisecond. Timestamps name files,
    so one writer never produces two records at the same path.
    """

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = ensure_utc(self._now())
        current = current.replace(microsecond=(current.microsecond // 1000) * 1000)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(milliseconds=1)
        self._last = current
        return current

    def now_iso(self) -> str:
        return format_iso(self.now())
