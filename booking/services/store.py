"""
Django ORM implementation of the appointment/window store.

The scheduling core calls these methods and only ever sees the plain value
objects from :mod:`booking.services.types`.  Whether a related record
arrives here as an instance or a bare id is resolved in this module.
"""
from __future__ import annotations

import datetime
from typing import Optional

from django.db import IntegrityError, transaction

from booking.exceptions import NotFoundError, ValidationError
from booking.models import (
    Appointment,
    AppointmentChange,
    AppointmentStatusHistory,
    AvailabilityWindow,
    Department,
    Doctor,
    Patient,
)
from booking.services.types import Booking, Window
from booking.timeutils import parse_time, to_time

DUPLICATE_SLOT_CODE = 'duplicate_slot'


def _pk(value):
    """Accept either a model instance or a bare identifier."""
    return getattr(value, 'pk', value)


def window_from_model(w: AvailabilityWindow) -> Window:
    return Window(
        id=w.id,
        doctor_id=w.doctor_id,
        day_of_week=w.day_of_week,
        start_time=parse_time(w.start_time),
        end_time=parse_time(w.end_time),
        max_occupants=w.max_occupants,
    )


def booking_from_model(a: Appointment) -> Booking:
    return Booking(
        id=a.id,
        doctor_id=a.doctor_id,
        patient_id=a.patient_id,
        department_id=a.department_id,
        date=a.date,
        time=parse_time(a.time),
        status=a.status,
        reason=a.reason,
    )


class AppointmentStore:
    """Fetch/store operations used by the booking and reschedule engines."""

    # -- bookings ---------------------------------------------------------

    def find_bookings(self, *, doctor_id, date: datetime.date, status: Optional[str] = None) -> list[Booking]:
        qs = Appointment.objects.filter(doctor_id=_pk(doctor_id), date=date)
        if status:
            qs = qs.filter(status=status)
        return [booking_from_model(a) for a in qs.order_by('time', 'id')]

    def get_booking(self, booking_id) -> Booking:
        a = Appointment.objects.filter(id=_pk(booking_id)).first()
        if not a:
            raise NotFoundError('Appointment not found')
        return booking_from_model(a)

    def create_booking(self, payload: dict, *, new_patient: Optional[dict] = None) -> Booking:
        """Insert one appointment.

        With ``new_patient`` the patient row is created in the same
        transaction, so a rejected booking leaves no patient behind.
        """
        if not new_patient and not Patient.objects.filter(id=_pk(payload['patient_id'])).exists():
            raise NotFoundError('Patient not found')
        if not self.doctor_exists(payload['doctor_id']):
            raise NotFoundError('Doctor not found')
        if payload.get('department_id') and not Department.objects.filter(id=_pk(payload['department_id'])).exists():
            raise NotFoundError('Department not found')
        try:
            with transaction.atomic():
                patient_id = self.create_patient(new_patient) if new_patient else _pk(payload['patient_id'])
                a = Appointment.objects.create(
                    patient_id=patient_id,
                    doctor_id=_pk(payload['doctor_id']),
                    department_id=_pk(payload.get('department_id')),
                    date=payload['date'],
                    time=to_time(payload['time']),
                    reason=payload.get('reason') or '',
                    status=payload.get('status') or Appointment.STATUS_SCHEDULED,
                )
        except IntegrityError:
            raise ValidationError('Doctor already has an appointment at this time', code=DUPLICATE_SLOT_CODE)
        return booking_from_model(a)

    def update_booking(self, booking_id, fields: dict, *, change_reason: Optional[str] = None) -> Booking:
        """Update ``date``/``time``/``status``/``reason`` of one appointment.

        A date or time change is recorded as an :class:`AppointmentChange`.
        """
        try:
            with transaction.atomic():
                a = Appointment.objects.select_for_update().filter(id=_pk(booking_id)).first()
                if not a:
                    raise NotFoundError('Appointment not found')
                old_date, old_time = a.date, a.time
                if 'date' in fields:
                    a.date = fields['date']
                if 'time' in fields:
                    a.time = to_time(fields['time'])
                if 'status' in fields:
                    a.status = fields['status']
                if 'reason' in fields:
                    a.reason = fields['reason'] or ''
                a.save()
                if (a.date, a.time) != (old_date, old_time):
                    AppointmentChange.objects.create(
                        appointment=a,
                        old_date=old_date,
                        old_time=old_time,
                        new_date=a.date,
                        new_time=a.time,
                        reason=change_reason or '',
                    )
        except IntegrityError:
            raise ValidationError('Doctor already has an appointment at this time', code=DUPLICATE_SLOT_CODE)
        return booking_from_model(a)

    def record_status_change(self, booking_id, from_status: str, to_status: str, *, changed_by=None, reason: str = '') -> None:
        AppointmentStatusHistory.objects.create(
            appointment_id=_pk(booking_id),
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by if getattr(changed_by, 'is_authenticated', False) else None,
            reason=reason,
        )

    # -- windows ----------------------------------------------------------

    def find_windows(self, *, doctor_id=None) -> list[Window]:
        qs = AvailabilityWindow.objects.all()
        if doctor_id is not None:
            qs = qs.filter(doctor_id=_pk(doctor_id))
        return [window_from_model(w) for w in qs.order_by('doctor_id', 'start_time', 'id')]

    def get_window(self, window_id) -> Window:
        w = AvailabilityWindow.objects.filter(id=_pk(window_id)).first()
        if not w:
            raise NotFoundError('Doctor schedule not found')
        return window_from_model(w)

    def create_window(self, payload: dict) -> Window:
        w = AvailabilityWindow.objects.create(
            doctor_id=_pk(payload['doctor_id']),
            day_of_week=payload['day_of_week'],
            start_time=to_time(payload['start_time']),
            end_time=to_time(payload['end_time']),
            max_occupants=payload.get('max_occupants'),
        )
        return window_from_model(w)

    def update_window(self, window_id, payload: dict) -> Window:
        w = AvailabilityWindow.objects.filter(id=_pk(window_id)).first()
        if not w:
            raise NotFoundError('Doctor schedule not found')
        if 'doctor_id' in payload:
            w.doctor_id = _pk(payload['doctor_id'])
        if 'day_of_week' in payload:
            w.day_of_week = payload['day_of_week']
        if 'start_time' in payload:
            w.start_time = to_time(payload['start_time'])
        if 'end_time' in payload:
            w.end_time = to_time(payload['end_time'])
        if 'max_occupants' in payload:
            w.max_occupants = payload['max_occupants']
        w.save()
        return window_from_model(w)

    def delete_window(self, window_id) -> None:
        deleted, _ = AvailabilityWindow.objects.filter(id=_pk(window_id)).delete()
        if not deleted:
            raise NotFoundError('Doctor schedule not found')

    # -- people -----------------------------------------------------------

    def doctor_exists(self, doctor_id) -> bool:
        return Doctor.objects.filter(id=_pk(doctor_id)).exists()

    def describe_doctor(self, doctor_id) -> str:
        d = Doctor.objects.filter(id=_pk(doctor_id)).first()
        return d.display_name if d else f'Doctor #{_pk(doctor_id)}'

    def create_patient(self, payload: dict) -> int:
        p = Patient.objects.create(
            first_name=payload['first_name'],
            last_name=payload['last_name'],
            email=payload.get('email') or '',
            phone=payload.get('phone') or '',
            date_of_birth=payload.get('date_of_birth') or None,
            gender=payload.get('gender') or '',
            address=payload.get('address') or '',
        )
        return p.id
