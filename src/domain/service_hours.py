"""
Service-window checks and campus-local time.

All ride times are stored as *naive campus-local* wall-clock datetimes.
Aware datetimes coming from clients are converted into the campus timezone
first, so a ride requested for "Monday 10:00 campus time" is evaluated on
Monday 10:00 no matter where the caller is.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo


def _parse_hhmm(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def to_campus_local(value: datetime, tz_name: str) -> datetime:
    """Strip *value* down to naive campus-local time."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


class ServiceHours:
    """Weekday + minute-of-day window, both ends inclusive."""

    def __init__(self, days: list[int], start: str, end: str):
        self.days = frozenset(days)
        self.start_minute = _parse_hhmm(start)
        self.end_minute = _parse_hhmm(end)

    @classmethod
    def from_settings(cls, settings) -> "ServiceHours":
        return cls(settings.service_days, settings.service_start, settings.service_end)

    def contains(self, when: datetime) -> bool:
        # Seconds are ignored: 19:00:30 still counts as 19:00
        if when.isoweekday() not in self.days:
            return False
        minute = when.hour * 60 + when.minute
        return self.start_minute <= minute <= self.end_minute

    def describe(self) -> str:
        start = f"{self.start_minute // 60}:{self.start_minute % 60:02d}"
        end = f"{self.end_minute // 60}:{self.end_minute % 60:02d}"
        return f"{start}-{end}"
