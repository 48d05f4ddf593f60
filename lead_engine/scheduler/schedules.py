# lead_engine/scheduler/schedules.py
from dataclasses import dataclass
from datetime import datetime, timedelta

EPOCH = datetime(1970, 1, 1)


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


@dataclass(frozen=True)
class Interval:
    """Fixed period aligned to the epoch, so "every 15 minutes" fires at :00, :15, :30, :45."""

    seconds: int

    @classmethod
    def minutes(cls, n: int) -> "Interval":
        return cls(n * 60)

    @classmethod
    def hours(cls, n: int) -> "Interval":
        return cls(n * 3600)

    def next_after(self, moment: datetime) -> datetime:
        elapsed = int((moment - EPOCH).total_seconds())
        return EPOCH + timedelta(seconds=(elapsed // self.seconds + 1) * self.seconds)

    def describe(self) -> str:
        if self.seconds % 3600 == 0:
            return f"Every {_plural(self.seconds // 3600, 'hour')}"
        if self.seconds % 60 == 0:
            return f"Every {_plural(self.seconds // 60, 'minute')}"
        return f"Every {_plural(self.seconds, 'second')}"


@dataclass(frozen=True)
class DailyAt:
    """Once a day at a fixed UTC wall-clock time."""

    hour: int
    minute: int = 0

    def next_after(self, moment: datetime) -> datetime:
        candidate = moment.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= moment:
            candidate += timedelta(days=1)
        return candidate

    def describe(self) -> str:
        return f"Daily at {self.hour:02d}:{self.minute:02d} UTC"


def describe_delay(delta: timedelta) -> str:
    """Human readable "in 12 minutes" style estimate."""
    seconds = int(delta.total_seconds())
    if seconds <= 0:
        return "due now"
    if seconds < 60:
        return f"in {_plural(seconds, 'second')}"
    if seconds < 3600:
        return f"in {_plural(seconds // 60, 'minute')}"
    hours, rest = divmod(seconds, 3600)
    if rest < 60:
        return f"in {_plural(hours, 'hour')}"
    return f"in {_plural(hours, 'hour')} {_plural(rest // 60, 'minute')}"
