"""Clock sources for expiry checks and cancellation timestamps."""

import datetime as dt
from typing import Protocol


class Clock(Protocol):
    """Supplies the current time as a timezone-aware UTC datetime."""

    def now(self) -> dt.datetime: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> dt.datetime:
        return dt.datetime.now(dt.UTC)


class FixedClock:
    """A clock that only moves when told to, for deterministic tests."""

    def __init__(self, current: dt.datetime) -> None:
        if current.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._current = current

    def now(self) -> dt.datetime:
        return self._current

    def set(self, current: dt.datetime) -> None:
        self._current = current

    def advance(self, **delta: float) -> dt.datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._current = self._current + dt.timedelta(**delta)
        return self._current
