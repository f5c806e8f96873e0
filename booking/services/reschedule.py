"""
Reschedule propagation: edit a window and carry its bookings along.

Every booking inside the old window's next occurrence keeps its offset
from the window start, clamped into the new window, and moves to the new
window's next occurrence.  Bookings are migrated one by one, in the
direction the window start moves; a failure on one is recorded and the
rest continue.  The window edit is persisted whatever the migration
outcome, and patients are notified last.

Two bookings whose offsets compress onto the same clamped time are not
de-duplicated; the collision is logged and the store's unique constraint
decides which one fails.
"""
from __future__ import annotations

import datetime
import logging
from collections import Counter

from booking.models import Appointment
from booking.services.projection import next_occurrence
from booking.services.schedules import clean_window
from booking.services.types import MigrationOutcome, RescheduleResult, Window
from booking.timeutils import clamp, format_time, offset_within_range

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = 'Schedule information saved (no changes detected)'
NO_APPOINTMENTS_MESSAGE = 'Schedule updated; no appointments found for this schedule'


def migrated_time(booking_time: int, old: Window, new: Window) -> int:
    """Keep the booking's offset from the window start, clamped into ``new``."""
    offset = booking_time - old.start_time
    return clamp(new.start_time + offset, new.start_time, new.end_time)


def affected_bookings(store, window: Window, today: datetime.date) -> tuple[datetime.date, list]:
    """Scheduled bookings inside ``window`` on its next occurrence."""
    projected = next_occurrence(window.day_of_week, today)
    bookings = store.find_bookings(
        doctor_id=window.doctor_id, date=projected, status=Appointment.STATUS_SCHEDULED
    )
    inside = [b for b in bookings if offset_within_range(b.time, window.start_time, window.end_time)]
    return projected, inside


def _persist_window(store, result: RescheduleResult, window_id, payload: dict) -> None:
    try:
        result.window = store.update_window(window_id, payload)
        result.window_updated = True
    except Exception as exc:
        logger.warning('Persisting schedule %s failed: %s', window_id, exc)
        result.window_error = str(exc)


def _summary_message(result: RescheduleResult) -> str:
    total = len(result.outcomes)
    if result.window_updated:
        parts = [f'Schedule updated; {result.updated_count} of {total} appointments updated']
    else:
        parts = [f'Schedule update failed: {result.window_error}',
                 f'{result.updated_count} of {total} appointments updated']
    if result.failed_count:
        parts.append(f'{result.failed_count} failed')
    if result.notification == 'failed':
        parts.append(f'notifications failed: {result.notification_error}')
    elif result.notification == 'dispatched':
        parts.append(f'notifications sent to {len(result.affected_ids)} patient(s)')
    return '; '.join(parts)


def reschedule(store, window_id, *, day_of_week, start_time, end_time, max_occupants=None,
               today: datetime.date, notifier=None) -> RescheduleResult:
    """Edit window ``window_id`` and migrate its affected bookings.

    Validation failures (unknown window or doctor, bad day, bad time range,
    overlap) raise before anything is written.  Everything after that is
    reported in the returned :class:`RescheduleResult` instead of raised.
    """
    old = store.get_window(window_id)
    payload = clean_window(
        store,
        {
            'doctor_id': old.doctor_id,
            'day_of_week': day_of_week,
            'start_time': start_time,
            'end_time': end_time,
            'max_occupants': max_occupants,
        },
        exclude_id=window_id,
    )
    new = Window(id=old.id, **payload)
    result = RescheduleResult(window=old)

    if new == old:
        result.message = NO_CHANGES_MESSAGE
        return result

    old_date, affected = affected_bookings(store, old, today)
    result.affected_ids = [b.id for b in affected]
    if not affected:
        _persist_window(store, result, window_id, payload)
        result.message = NO_APPOINTMENTS_MESSAGE if result.window_updated else _summary_message(result)
        return result

    new_date = next_occurrence(new.day_of_week, today)
    # Migrate in the direction of the shift: on the same date no booking may
    # land on a time still held by one that has not moved yet.
    ordered = sorted(affected, key=lambda b: (b.time, b.id), reverse=new.start_time > old.start_time)
    planned = [(b, migrated_time(b.time, old, new)) for b in ordered]
    collisions = [t for t, n in Counter(t for _, t in planned).items() if n > 1]
    if collisions:
        logger.warning(
            'Schedule %s: %d migrated appointment(s) share a clamped time (%s); the store will reject duplicates',
            window_id, len(planned), ', '.join(format_time(t) for t in sorted(collisions)),
        )

    reason = f'Schedule changed from {old.label()} to {new.label()}'
    for booking, new_time in planned:
        try:
            store.update_booking(booking.id, {'date': new_date, 'time': new_time}, change_reason=reason)
            result.outcomes.append(MigrationOutcome(booking.id, 'updated', new_date, new_time))
        except Exception as exc:
            logger.warning('Failed to migrate appointment %s: %s', booking.id, exc)
            result.outcomes.append(MigrationOutcome(booking.id, 'failed', reason=str(exc)))

    _persist_window(store, result, window_id, payload)

    if notifier is not None:
        moved = {o.booking_id for o in result.outcomes if o.status == 'updated'}
        try:
            notifier.notify_affected_patients({
                'window_id': old.id,
                'old_window': old.summary(old_date),
                'new_window': new.summary(new_date),
                'booking_ids': [i for i in result.affected_ids if i in moved],
                'failed_ids': [i for i in result.affected_ids if i not in moved],
            })
            result.notification = 'dispatched'
        except Exception as exc:
            logger.warning('Schedule change notifications for schedule %s failed: %s', window_id, exc)
            result.notification = 'failed'
            result.notification_error = str(exc)

    result.message = _summary_message(result)
    return result
