# lead_engine/scheduler/clock.py
from datetime import datetime, timedelta
from typing import Optional

from lead_engine.db.base_class import utcnow


class Clock:
    """Source of "now" for the scheduler and jobs. Naive UTC throughout."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return utcnow()


class ManualClock(Clock):
    """Clock that only moves when told to; lets tests step through ticks without sleeping."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utcnow()

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        self._now = self._now + (delta or timedelta(**kwargs))
        return self._now
