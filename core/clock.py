"""
DeckRecall – Clock
===================
Source of "today" for scheduling. Swap in ``FixedClock`` for tests.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone


class Clock:
    """Calendar-day clock used by the review engine."""

    def today(self) -> date:
        raise NotImplementedError

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock. Days are UTC days, the same calendar as card timestamps."""

    def today(self) -> date:
        return self.now().date()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Always returns the same day; ``advance`` moves it forward."""

    def __init__(self, today: date) -> None:
        self._today = today

    def today(self) -> date:
        return self._today

    def now(self) -> datetime:
        return datetime.combine(self._today, time(12, 0), tzinfo=timezone.utc)

    def advance(self, days: int = 1) -> None:
        self._today = date.fromordinal(self._today.toordinal() + days)
