"""Clock abstraction so date-driven transitions can be tested without wall-clock time"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Naive UTC wall clock, matching the naive DateTime columns"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Clock pinned to a moment; ``advance`` moves it forward"""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> datetime:
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests"""
    return system_clock
