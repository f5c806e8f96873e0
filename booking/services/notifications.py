"""
Best-effort notification delivery for bookings and schedule changes.

Both entry points raise :class:`NotificationError` on failure; callers in
the scheduling core catch it, log it and carry on, so a delivery problem
never rolls back a booking or a schedule edit.
"""
from __future__ import annotations

import logging
import smtplib

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.mail import send_mail

from booking.exceptions import NotificationError
from booking.models import Appointment, Doctor, Notification, Patient
from booking.services.types import Booking
from booking.timeutils import format_long_date, format_time

logger = logging.getLogger(__name__)

SCHEDULE_GROUP = 'schedules'


def _schedule_block(title: str, summary: dict) -> str:
    return (
        f"{title}:\n"
        f"  - Day: {summary.get('dayOfWeek')}\n"
        f"  - Date: {summary.get('date')}\n"
        f"  - Time: {summary.get('startTime')} - {summary.get('endTime')}\n"
    )


def schedule_change_email(patient: Patient, doctor_name: str, appointment: Appointment,
                          old_window: dict, new_window: dict, *, moved: bool = True) -> tuple[str, str]:
    """Return ``(subject, body)`` for one affected patient.

    ``moved`` is false for appointments that could not follow the new
    schedule; those patients are asked to rebook instead.
    """
    subject = 'Appointment Schedule Change Notification'
    when = f"{format_long_date(appointment.date)} at {appointment.time:%H:%M}"
    if moved:
        intro = f"The schedule of {doctor_name} has changed and your appointment was moved.\n\n"
        outcome = (
            f"Your new appointment: {when}.\n\n"
            "If the new time does not suit you, please contact the hospital to rebook.\n"
        )
    else:
        intro = f"The schedule of {doctor_name} has changed.\n\n"
        outcome = (
            f"Your appointment on {when} could not be moved to the new schedule.\n\n"
            "Please contact the hospital to rebook.\n"
        )
    body = (
        f"Dear {patient.full_name},\n\n"
        f"{intro}"
        f"{_schedule_block('Previous Schedule', old_window)}\n"
        f"{_schedule_block('New Schedule', new_window)}\n"
        f"{outcome}"
    )
    return subject, body


class Notifier:
    """Delivers in-app notifications, e-mails and WebSocket broadcasts."""

    def notify_doctor(self, booking: Booking) -> Notification:
        doctor = Doctor.objects.select_related('user').filter(id=booking.doctor_id).first()
        if not doctor or not doctor.user_id:
            raise NotificationError('Doctor does not have a user account, cannot send notification')
        patient = Patient.objects.filter(id=booking.patient_id).first()
        patient_name = patient.full_name if patient else 'A patient'
        message = (
            f"New appointment booked! {patient_name} has scheduled an appointment with you on "
            f"{format_long_date(booking.date)} at {format_time(booking.time)}."
        )
        if booking.reason:
            message += f" Reason: {booking.reason}"
        return Notification.objects.create(user=doctor.user, message=message, notification_type='appointment')

    def notify_affected_patients(self, payload: dict) -> dict:
        """Tell the patients of a changed schedule what happened to their appointment.

        ``payload`` carries ``window_id``, ``old_window``, ``new_window``,
        ``booking_ids`` (appointments moved to the new schedule) and
        ``failed_ids`` (appointments left where they were).  Returns a summary
        of what was delivered; raises :class:`NotificationError` if any
        delivery failed.
        """
        window_id = payload.get('window_id')
        old_window = payload.get('old_window')
        new_window = payload.get('new_window')
        booking_ids = payload.get('booking_ids') or []
        failed_ids = set(payload.get('failed_ids') or [])
        if not window_id or not old_window or not new_window or not (booking_ids or failed_ids):
            raise NotificationError('Missing required fields')

        appointments = list(
            Appointment.objects.select_related('patient', 'patient__user', 'doctor')
            .filter(id__in=[*booking_ids, *failed_ids])
            .order_by('id')
        )
        if not appointments:
            raise NotificationError('No appointments found for the provided IDs')

        sent, in_app, failures = 0, 0, []
        for appt in appointments:
            patient = appt.patient
            moved = appt.id not in failed_ids
            when = f"{format_long_date(appt.date)} at {appt.time:%H:%M}"
            if patient.user_id:
                if moved:
                    message = f"Your appointment with {appt.doctor.display_name} was moved to {when}."
                else:
                    message = (
                        f"{appt.doctor.display_name} changed their schedule and your appointment on {when} "
                        "could not be moved. Please contact the hospital to rebook."
                    )
                Notification.objects.create(user=patient.user, notification_type='schedule_change', message=message)
                in_app += 1
            if not patient.email:
                continue
            subject, body = schedule_change_email(
                patient, appt.doctor.display_name, appt, old_window, new_window, moved=moved
            )
            try:
                send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [patient.email])
                sent += 1
            except (smtplib.SMTPException, OSError) as exc:
                logger.warning('Schedule change e-mail to patient %s failed: %s', patient.id, exc)
                failures.append(f'{patient.email}: {exc}')

        self._broadcast(
            window_id, old_window, new_window,
            [a.id for a in appointments if a.id not in failed_ids],
            [a.id for a in appointments if a.id in failed_ids],
        )

        if failures:
            raise NotificationError(
                f"{len(failures)} of {len(appointments)} e-mail(s) failed: {'; '.join(failures)}"
            )
        return {
            'emailsSent': sent,
            'inAppNotifications': in_app,
            'message': f'Notifications sent to {len(appointments)} patient(s)',
        }

    def _broadcast(self, window_id, old_window: dict, new_window: dict, booking_ids: list[int],
                   failed_ids: list[int]) -> None:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        event = {
            'type': 'schedule.changed',
            'windowId': window_id,
            'oldWindow': old_window,
            'newWindow': new_window,
            'appointmentIds': booking_ids,
            'failedAppointmentIds': failed_ids,
        }
        async_to_sync(channel_layer.group_send)(SCHEDULE_GROUP, event)
