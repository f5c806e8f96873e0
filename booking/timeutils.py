"""
Minute-of-day arithmetic used by the scheduling core.

Times travel through the core as integers (minutes after midnight); they
are parsed from and formatted back to ``HH:MM`` strings only at the edges.
"""
from __future__ import annotations

import datetime
import re
from typing import Union

from .exceptions import FormatError

TIME_RE = re.compile(r'([01][0-9]|2[0-3]):([0-5][0-9])')

MINUTES_PER_DAY = 24 * 60


def parse_time(value) -> int:
    """Return the minute-of-day for an ``HH:MM`` string.

    ``datetime.time`` values are accepted as well so that model instances
    can be passed straight through.
    """
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    m = TIME_RE.fullmatch(value) if isinstance(value, str) else None
    if not m:
        raise FormatError(f'Invalid time "{value}". Please provide valid time format (HH:MM).')
    return int(m.group(1)) * 60 + int(m.group(2))


def format_time(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise FormatError(f'Minute offset {minutes} is outside a single day.')
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def to_time(minutes: int) -> datetime.time:
    return datetime.time(minutes // 60, minutes % 60)


def validate_range(start, end) -> tuple[int, int]:
    """Parse both ends and require ``end`` strictly after ``start``."""
    start_min = parse_time(start)
    end_min = parse_time(end)
    if end_min <= start_min:
        raise FormatError('End time must be after start time')
    return start_min, end_min


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


def offset_within_range(point: int, start: int, end: int) -> bool:
    # Inclusive at both ends: a booking exactly at the window end belongs to it.
    return start <= point <= end


def ranges_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    # Touching ranges (09:00-10:00 and 10:00-11:00) do not overlap.
    return a_start < b_end and b_start < a_end


def parse_date(value: Union[str, datetime.date, None]) -> datetime.date:
    """Accept a ``date`` or a ``YYYY-MM-DD`` string (ISO datetimes are cut)."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise FormatError(f'Invalid date "{value}". Use YYYY-MM-DD.')


def format_long_date(value: datetime.date) -> str:
    """``Monday, October 26, 2026``."""
    return f'{value:%A}, {value:%B} {value.day}, {value.year}'
