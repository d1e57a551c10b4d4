"""Current date/time providers.

Every engine entry point takes a clock instead of calling ``datetime.now()``
so "today" can be pinned in tests and replayed in repair tools.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in the user's timezone."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self.tz = tz or ZoneInfo("UTC")

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=ZoneInfo("UTC"))
        self._now = now
        self.tz = now.tzinfo

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, seconds: float = 0.0, *, days: int = 0) -> datetime:
        self._now = self._now + timedelta(days=days, seconds=seconds)
        return self._now

    def set(self, now: datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.tz)
        self._now = now


def days_between(earlier: date, later: date) -> int:
    """Whole calendar days from *earlier* to *later* (negative if reversed)."""
    return (later - earlier).days
