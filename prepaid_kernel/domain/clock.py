"""
Injectable time source for the ledger.

Business numbers embed the clock's date, settlement and forecast anchors
default to its ``today()``, and every audit event and record timestamp is
taken from ``now()``.  Services receive a ``Clock`` through their constructor
and never read the system time themselves.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone, tzinfo


class Clock(ABC):
    """Source of the current instant; ``now()`` is always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """The business date of ``now()``."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time, expressed in the business timezone (UTC by default).

    A location that trades in local time should pass its zone so that a
    lesson taught at 23:30 lands on the right business date.
    """

    def __init__(self, business_tz: tzinfo = timezone.utc):
        self._tz = business_tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class DeterministicClock(Clock):
    """Frozen clock for tests: starts at 2024-01-01 12:00 UTC (a Monday)."""

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, *, days: int = 0, hours: int = 0, seconds: int = 0) -> datetime:
        self._current += timedelta(days=days, hours=hours, seconds=seconds)
        return self._current

    def move_to(self, business_date: date) -> None:
        """Jump to midday of ``business_date``, keeping the timezone."""
        self._current = datetime.combine(business_date, time(12, 0), tzinfo=self._current.tzinfo)
