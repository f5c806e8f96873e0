"""
Create, edit and delete availability windows.

Payloads use the core's vocabulary (``doctor_id``, ``day_of_week``,
``start_time``/``end_time`` as ``HH:MM`` strings, ``max_occupants``); the
store receives minute-of-day integers.
"""
from __future__ import annotations

from typing import Optional

from booking.exceptions import NotFoundError, ValidationError
from booking.services.projection import day_index
from booking.services.types import Window
from booking.timeutils import format_time, ranges_overlap, validate_range

OVERLAP_MESSAGE = 'Doctor already has a schedule for this day with overlapping time'


def _capacity(value) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError('Max patients must be a whole number')
    if value < 0:
        raise ValidationError('Max patients cannot be negative')
    # 0 and empty both mean unlimited
    return value or None


def clean_window(store, payload: dict, *, exclude_id=None) -> dict:
    """Validate a full window payload and return it in store form."""
    doctor_id = payload.get('doctor_id')
    if not doctor_id:
        raise ValidationError('Please select a doctor')
    if not store.doctor_exists(doctor_id):
        raise NotFoundError('Doctor not found')
    day = payload.get('day_of_week')
    if not day:
        raise ValidationError('Please select a day of week')
    day_index(day)
    if not payload.get('start_time') or not payload.get('end_time'):
        raise ValidationError('Please provide both start and end times')
    start, end = validate_range(payload['start_time'], payload['end_time'])
    capacity = _capacity(payload.get('max_occupants'))

    for other in store.find_windows(doctor_id=doctor_id):
        if exclude_id is not None and str(other.id) == str(exclude_id):
            continue
        if other.day_of_week == day and ranges_overlap(start, end, other.start_time, other.end_time):
            raise ValidationError(OVERLAP_MESSAGE)

    return {
        'doctor_id': doctor_id,
        'day_of_week': day,
        'start_time': start,
        'end_time': end,
        'max_occupants': capacity,
    }


def create_window(store, payload: dict) -> Window:
    return store.create_window(clean_window(store, payload))


def update_window(store, window_id, payload: dict) -> Window:
    """Plain edit: no booking is migrated (see :mod:`booking.services.reschedule`)."""
    current = store.get_window(window_id)
    merged = {
        'doctor_id': current.doctor_id,
        'day_of_week': current.day_of_week,
        'start_time': current.start_time,
        'end_time': current.end_time,
        'max_occupants': current.max_occupants,
    }
    merged.update({k: v for k, v in payload.items() if k in merged})
    return store.update_window(window_id, clean_window(store, _as_text(merged), exclude_id=window_id))


def delete_window(store, window_id) -> None:
    store.delete_window(window_id)


def _as_text(payload: dict) -> dict:
    out = dict(payload)
    for key in ('start_time', 'end_time'):
        if isinstance(out.get(key), int):
            out[key] = format_time(out[key])
    return out
