"""
Injected time.

"Today" decides everything in the engine: where the 24-instance window
ends, which instances a ``future`` edit touches, what a sweep backfills.
Services therefore take a ``Clock`` instead of calling ``datetime.now()``,
and tests pin it with ``DeterministicClock``.

Datetimes are naive wall-clock values; the engine runs in one local zone.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()

    def horizon(self, years: int) -> date:
        """``today()`` plus whole years; Feb 29 clamps to Feb 28."""
        return self.today() + relativedelta(years=years)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class DeterministicClock(Clock):
    """A clock that only moves when told to.

    ``advance`` / ``advance_days`` accumulate on top of the fixed time;
    ``set_time`` replaces both.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0)
        self._offset = timedelta()

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta()

    def advance(self, seconds: int = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._offset += timedelta(days=days)
