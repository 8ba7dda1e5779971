# app/clock.py
from datetime import date, datetime
from zoneinfo import ZoneInfo
from .config import TZ_NAME


class Clock:
    """Wall clock in the center's local timezone (naive local datetimes)."""

    def __init__(self, tz_name: str = TZ_NAME):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock pinned to a given instant."""

    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at


default_clock = Clock()


def add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1
