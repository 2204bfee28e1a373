"""
clock.py
────────
Source of "now".  All schedule math takes `now` as an argument; managers
ask a Clock for it so tests can pin time.

Times are naive local datetimes throughout.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock local time."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs) -> datetime:
        """Move forward by timedelta(**kwargs) and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now
