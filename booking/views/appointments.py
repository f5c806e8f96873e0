"""
Appointment views: listing, booking and status changes.

Patients only see and book their own appointments, doctors see the
appointments booked with them and admins see everything.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from booking.exceptions import NotFoundError
from booking.models import Appointment
from booking.permissions import doctor_for, patient_for
from booking.serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentStatusSerializer,
    appointment_to_dict,
    new_patient_payload,
)
from booking.services.audit import log_action
from booking.services.booking import book, set_status
from booking.services.notifications import Notifier
from booking.services.store import AppointmentStore


def _scoped_queryset(user):
    qs = Appointment.objects.select_related('patient', 'doctor', 'department')
    role = getattr(user, 'role', '')
    if role == 'admin':
        return qs
    if role == 'doctor':
        doctor = doctor_for(user)
        return qs.filter(doctor=doctor) if doctor else qs.none()
    patient = patient_for(user)
    return qs.filter(patient=patient) if patient else qs.none()


def _get_visible(user, pk) -> Appointment:
    appt = _scoped_queryset(user).filter(id=pk).first()
    if not appt:
        raise NotFoundError('Appointment not found')
    return appt


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointments(request):
    """List visible appointments or book a new one.

    ``GET`` accepts ``status``, ``date``, ``doctorId`` and ``patientId``
    filters.  ``POST`` books through the booking engine; a patient always
    books for themselves and cannot register a new patient.
    """
    if request.method == 'GET':
        q = AppointmentListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = _scoped_queryset(request.user)
        f = q.validated_data
        if f.get('status'):
            qs = qs.filter(status=f['status'])
        if f.get('date'):
            qs = qs.filter(date=f['date'])
        if f.get('doctorId'):
            qs = qs.filter(doctor_id=f['doctorId'])
        if f.get('patientId'):
            qs = qs.filter(patient_id=f['patientId'])
        data = [appointment_to_dict(a) for a in qs.order_by('date', 'time', 'id')]
        return Response({'ok': True, 'data': data})

    ser = AppointmentCreateSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    v = ser.validated_data
    patient_id = v.get('patientId')
    new_patient = new_patient_payload(v.get('newPatient'))
    if getattr(request.user, 'role', '') == 'patient':
        patient = patient_for(request.user)
        if not patient:
            raise PermissionDenied('No patient record is linked to this account')
        if patient_id and patient_id != patient.id:
            raise PermissionDenied('Patients can only book appointments for themselves')
        patient_id, new_patient = patient.id, None

    store = AppointmentStore()
    booking = book(
        store,
        patient_id=patient_id,
        doctor_id=v.get('doctorId'),
        department_id=v.get('departmentId'),
        date=v.get('date'),
        time=v.get('time'),
        reason=v.get('reason'),
        window_id=v.get('scheduleId'),
        new_patient=new_patient,
        notifier=Notifier(),
    )
    log_action(user=request.user, action='appointment_create', object_type='Appointment',
               object_id=booking.id, detail=booking.to_dict())
    appt = Appointment.objects.select_related('patient', 'doctor', 'department').get(id=booking.id)
    return Response({'ok': True, 'data': appointment_to_dict(appt)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk: int):
    appt = _get_visible(request.user, pk)
    return Response({'ok': True, 'data': appointment_to_dict(appt)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def appointment_status(request, pk: int):
    """Move an appointment along its status lifecycle.

    Patients may only cancel their own appointments.
    """
    appt = _get_visible(request.user, pk)
    ser = AppointmentStatusSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    new_status = ser.validated_data['status']
    if getattr(request.user, 'role', '') == 'patient' and new_status != Appointment.STATUS_CANCELLED:
        raise PermissionDenied('Patients can only cancel their appointments')

    store = AppointmentStore()
    updated = set_status(store, appt.id, new_status, changed_by=request.user,
                         reason=ser.validated_data.get('reason', ''))
    log_action(user=request.user, action='appointment_status', object_type='Appointment',
               object_id=appt.id, detail={'from': appt.status, 'to': updated.status})
    appt.refresh_from_db()
    return Response({'ok': True, 'data': appointment_to_dict(appt)})
