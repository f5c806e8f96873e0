"""
Weekday projection: map a recurring weekday onto its next calendar date.

A projection is never stored.  Callers recompute it on every request with
an injected ``today`` so that results stay deterministic under test.
"""
from __future__ import annotations

import datetime

from booking.exceptions import ValidationError

DAYS_OF_WEEK = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


def day_index(day_of_week: str) -> int:
    """Sunday is 0, Saturday is 6."""
    try:
        return DAYS_OF_WEEK.index(day_of_week)
    except ValueError:
        raise ValidationError(f'Invalid day of week "{day_of_week}". Use one of: {", ".join(DAYS_OF_WEEK)}')


def weekday_name(value: datetime.date) -> str:
    # date.weekday() is Monday=0; shift to the Sunday-first table.
    return DAYS_OF_WEEK[(value.weekday() + 1) % 7]


def next_occurrence(day_of_week: str, today: datetime.date) -> datetime.date:
    """Return the next date falling on ``day_of_week`` strictly after ``today``.

    When ``today`` already is that weekday the projection lands a full week
    out, so a booking made against a recurring slot always has lead time.
    """
    delta = day_index(day_of_week) - day_index(weekday_name(today))
    if delta <= 0:
        delta += 7
    return today + datetime.timedelta(days=delta)
