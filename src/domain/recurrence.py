"""
Weekly recurrence expansion.

Given a ``RecurringTemplate`` yields the concrete campus-local datetimes it
describes, in calendar order.  Pure and deterministic: filtering against
service hours, the current time and persistence is the caller's job.

Complexity: O(days in range).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterator

from .entities import RecurringTemplate
from .errors import ValidationError

WEEKDAY_NAMES = {1: "Mon", 2: "Tue", 3: "Wed", 4: "Thu", 5: "Fri", 6: "Sat", 7: "Sun"}


def validate_template(
    template: RecurringTemplate, allowed_days: frozenset[int], max_days: int
) -> None:
    if not template.pickup.strip() or not template.dropoff.strip():
        raise ValidationError("Pickup and dropoff locations are required")
    if template.pickup.strip() == template.dropoff.strip():
        raise ValidationError("Pickup and dropoff must differ")
    if not template.weekdays:
        raise ValidationError("At least one weekday is required")
    outside = set(template.weekdays) - set(allowed_days)
    if outside:
        names = ", ".join(WEEKDAY_NAMES.get(d, str(d)) for d in sorted(outside))
        raise ValidationError(f"Recurring rides are not offered on: {names}")
    if template.end_date < template.start_date:
        raise ValidationError("End date must not be before start date")
    if (template.end_date - template.start_date).days + 1 > max_days:
        raise ValidationError(f"Recurring range cannot exceed {max_days} days")


def iter_dates(start: date, end: date, weekdays: frozenset[int]) -> Iterator[date]:
    current = start
    while current <= end:
        if current.isoweekday() in weekdays:
            yield current
        current += timedelta(days=1)


def occurrences(template: RecurringTemplate) -> Iterator[datetime]:
    for day in iter_dates(template.start_date, template.end_date, template.weekdays):
        yield datetime.combine(day, template.time_of_day)
