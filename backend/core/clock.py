"""
Clock and local-calendar helpers.

Pollers take a Clock instead of calling datetime.now() so a cycle can be
run at any instant in tests. All persisted timestamps are naive UTC.
"""

from datetime import date, datetime, time, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to one instant; advance() moves it forward."""

    def __init__(self, instant: datetime):
        self._instant = instant if instant.tzinfo else instant.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant if instant.tzinfo else instant.replace(tzinfo=timezone.utc)

    def advance(self, delta) -> None:
        self._instant = self._instant + delta


def naive_utc(instant: datetime) -> datetime:
    """Drop tzinfo after converting to UTC (storage format)."""
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(instant: datetime, tz_name: str) -> date:
    """Calendar date in the business timezone at the given UTC instant."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(ZoneInfo(tz_name)).date()


def local_now(instant: datetime, tz_name: str) -> datetime:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(ZoneInfo(tz_name))


def local_midnight_utc(day: date, tz_name: str) -> datetime:
    """Local midnight of `day` in `tz_name`, as naive UTC."""
    local = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz_name))
    return naive_utc(local)
