"""
Capacity accounting for availability windows.

Counts are recomputed from the store on every call; bookings change
concurrently, so nothing here is cached.
"""
from __future__ import annotations

import datetime
from typing import Optional

from booking.models import Appointment
from booking.services.projection import next_occurrence
from booking.services.types import Window
from booking.timeutils import offset_within_range


def count_active_in_window(store, window: Window, projected_date: datetime.date) -> int:
    """Number of scheduled bookings whose time lies inside ``window`` on ``projected_date``."""
    bookings = store.find_bookings(
        doctor_id=window.doctor_id, date=projected_date, status=Appointment.STATUS_SCHEDULED
    )
    return sum(1 for b in bookings if offset_within_range(b.time, window.start_time, window.end_time))


def remaining_capacity(store, window: Window, projected_date: datetime.date) -> Optional[int]:
    """Free places left in the window occurrence, ``None`` when unlimited."""
    if not window.is_limited:
        return None
    return max(0, window.max_occupants - count_active_in_window(store, window, projected_date))


def list_open_windows(store, today: datetime.date, *, doctor_id=None) -> list[dict]:
    """Windows that can still take a booking on their next occurrence.

    Each entry carries the window, its projected date, the booked count and
    the remaining capacity (``None`` for unlimited windows).  Full windows
    are left out.
    """
    entries = []
    for window in store.find_windows(doctor_id=doctor_id):
        projected = next_occurrence(window.day_of_week, today)
        booked = count_active_in_window(store, window, projected)
        remaining = None if not window.is_limited else max(0, window.max_occupants - booked)
        if remaining == 0:
            continue
        entries.append({
            'window': window,
            'date': projected,
            'booked': booked,
            'remaining': remaining,
        })
    return entries
