"""
Booking engine: validate and create appointments against availability windows.

``book`` runs its checks in a fixed order and stops at the first failure:
required fields, time/date format, the window's day, hours and capacity,
exact-time collision.
The collision check is read-then-write; the partial unique constraint on
``Appointment`` is the final authority when two requests race for a slot.
"""
from __future__ import annotations

import logging
from typing import Optional

import bleach

from booking.exceptions import CapacityExceededError, SlotTakenError, ValidationError
from booking.models import Appointment
from booking.services.counter import count_active_in_window
from booking.services.projection import weekday_name
from booking.services.store import DUPLICATE_SLOT_CODE
from booking.services.types import Booking, Window
from booking.timeutils import format_long_date, format_time, offset_within_range, parse_date, parse_time

logger = logging.getLogger(__name__)

NEW_PATIENT_REQUIRED = ('first_name', 'last_name', 'email')

# scheduled -> any terminal or confirmed state; confirmed -> terminal states.
STATUS_TRANSITIONS = {
    Appointment.STATUS_SCHEDULED: [
        Appointment.STATUS_CONFIRMED,
        Appointment.STATUS_CANCELLED,
        Appointment.STATUS_NO_SHOW,
        Appointment.STATUS_COMPLETED,
    ],
    Appointment.STATUS_CONFIRMED: [
        Appointment.STATUS_COMPLETED,
        Appointment.STATUS_CANCELLED,
        Appointment.STATUS_NO_SHOW,
    ],
    Appointment.STATUS_COMPLETED: [],
    Appointment.STATUS_CANCELLED: [],
    Appointment.STATUS_NO_SHOW: [],
}


def can_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, [])


def _require(value, message: str):
    if value in (None, ''):
        raise ValidationError(message)
    return value


def _slot_taken_message(store, doctor_id, date, time_str: str, window: Optional[Window]) -> str:
    time_range = ''
    if window is not None:
        time_range = f" (Available times: {format_time(window.start_time)} - {format_time(window.end_time)})"
    return (
        f"This time has already been taken by another patient. {store.describe_doctor(doctor_id)} "
        f"already has an appointment on {format_long_date(date)} at {time_str}. "
        f"Please choose another time{time_range}."
    )


def book(store, *, patient_id=None, doctor_id=None, department_id=None, date=None, time=None,
         reason: Optional[str] = None, window_id=None, new_patient: Optional[dict] = None,
         notifier=None) -> Booking:
    """Create one scheduled appointment or raise the first failing check.

    ``window_id`` is given when booking against a known availability window
    and enables the capacity check.  ``new_patient`` (first_name, last_name,
    email, ...) replaces ``patient_id`` for walk-in patients; the patient
    record is created only once every slot check has passed.
    """
    # 1. required fields
    if not patient_id and not new_patient:
        raise ValidationError('Please select a patient')
    _require(doctor_id, 'Please select a doctor')
    _require(department_id, 'Please select a department')
    _require(date, 'Please select an appointment date')
    _require(time, 'Please select an appointment time')
    if new_patient and not patient_id:
        missing = [f for f in NEW_PATIENT_REQUIRED if not new_patient.get(f)]
        if missing:
            raise ValidationError(
                'Please fill in all required patient fields (First Name, Last Name, Email)'
            )

    # 2. formats
    minutes = parse_time(time)
    day = parse_date(date)

    # 3. originating window: weekday, hours, capacity
    window = None
    if window_id:
        window = store.get_window(window_id)
        if str(window.doctor_id) != str(doctor_id):
            raise ValidationError('The selected schedule does not belong to this doctor')
        if weekday_name(day) != window.day_of_week:
            raise ValidationError(
                f"The selected date does not fall on this schedule's day ({window.day_of_week})"
            )
        if not offset_within_range(minutes, window.start_time, window.end_time):
            raise ValidationError(
                f"Please choose a time within the schedule hours "
                f"({format_time(window.start_time)} - {format_time(window.end_time)})"
            )
        if window.is_limited:
            current = count_active_in_window(store, window, day)
            if current >= window.max_occupants:
                raise CapacityExceededError(
                    f"This time slot ({window.label()}) is fully booked. Maximum {window.max_occupants} "
                    f"patient(s) allowed, and all slots are already taken. Please choose another schedule."
                )

    # 4. exact-time collision
    existing = store.find_bookings(doctor_id=doctor_id, date=day, status=Appointment.STATUS_SCHEDULED)
    if any(b.time == minutes for b in existing):
        raise SlotTakenError(_slot_taken_message(store, doctor_id, day, time, window))

    # 5. persist; a walk-in patient is created in the same write as the booking
    payload = {
        'patient_id': patient_id,
        'doctor_id': doctor_id,
        'department_id': department_id,
        'date': day,
        'time': minutes,
        'reason': bleach.clean((reason or '').strip(), strip=True),
        'status': Appointment.STATUS_SCHEDULED,
    }
    try:
        booking = store.create_booking(payload, new_patient=None if patient_id else new_patient)
    except ValidationError as exc:
        if getattr(exc.detail, 'code', None) != DUPLICATE_SLOT_CODE:
            raise
        raise SlotTakenError(_slot_taken_message(store, doctor_id, day, time, window))

    if notifier is not None:
        try:
            notifier.notify_doctor(booking)
        except Exception:
            logger.warning('Failed to notify doctor %s about appointment %s', booking.doctor_id, booking.id, exc_info=True)

    return booking


def set_status(store, booking_id, new_status: str, *, changed_by=None, reason: str = '') -> Booking:
    """Move an appointment to ``new_status`` and record the transition."""
    if new_status not in STATUS_TRANSITIONS:
        raise ValidationError(f'Invalid status. Must be one of: {list(STATUS_TRANSITIONS)}')
    current = store.get_booking(booking_id)
    if not can_transition(current.status, new_status):
        raise ValidationError(f'Cannot change status from {current.status} to {new_status}')
    updated = store.update_booking(booking_id, {'status': new_status})
    store.record_status_change(booking_id, current.status, new_status, changed_by=changed_by, reason=reason)
    return updated

