"""
Clock Tool
UTC time helpers and injectable clocks for the reminder scheduler
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall clock"""

    def now(self) -> datetime:
        return utcnow()


class ManualClock:
    """
    Virtual clock for tests and replays.
    Time only moves when advance() or set() is called.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utcnow()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (minutes=5, seconds=300...)"""
        self._now = self._now + timedelta(**kwargs)
        return self._now


system_clock = SystemClock()
