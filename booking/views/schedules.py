"""
Doctor schedule (availability window) views.

Every authenticated user may read schedules; admins manage any doctor's
schedules and doctors only their own.  Window listings are cached per
doctor and dropped on every write.  Booking counts shown by the
``available`` listing are always computed fresh.
"""
from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from booking.exceptions import NotFoundError
from booking.models import Doctor
from booking.permissions import IsAdminOrDoctorForWrites, doctor_for, ensure_can_manage_doctor
from booking.serializers.schedules import (
    RescheduleSerializer,
    ScheduleListQuerySerializer,
    ScheduleUpdateSerializer,
    ScheduleWriteSerializer,
    to_window_payload,
    window_to_dict,
)
from booking.services import schedules as schedule_service
from booking.services.audit import log_action
from booking.services.counter import list_open_windows
from booking.services.notifications import Notifier
from booking.services.reschedule import reschedule as reschedule_window
from booking.services.store import AppointmentStore


def schedule_cache_key(doctor_id=None) -> str:
    return f"schedules:doctor={doctor_id or 'all'}"


def invalidate_schedule_cache(doctor_id) -> None:
    cache.delete_many([schedule_cache_key(doctor_id), schedule_cache_key()])


def _doctor_names(windows) -> dict:
    doctors = Doctor.objects.in_bulk({w.doctor_id for w in windows})
    return {pk: d.display_name for pk, d in doctors.items()}


def _cached_windows(store: AppointmentStore, doctor_id=None) -> list[dict]:
    key = schedule_cache_key(doctor_id)
    cached = cache.get(key)
    if cached is not None:
        return cached
    windows = store.find_windows(doctor_id=doctor_id)
    names = _doctor_names(windows)
    data = [window_to_dict(w, names.get(w.doctor_id, '')) for w in windows]
    cache.set(key, data, settings.SCHEDULE_CACHE_SECONDS)
    return data


def _window_response(window, code=status.HTTP_200_OK) -> Response:
    names = _doctor_names([window])
    return Response({'ok': True, 'data': window_to_dict(window, names.get(window.doctor_id, ''))}, status=code)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrDoctorForWrites])
def schedules(request):
    """List schedules or create one.

    ``GET`` returns every schedule for admins and patients (optionally
    filtered by ``doctorId``) and only their own for doctors.  ``POST``
    creates a schedule; doctors may omit ``doctorId``.
    """
    store = AppointmentStore()
    role = getattr(request.user, 'role', '')
    if request.method == 'GET':
        q = ScheduleListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        doctor_id = q.validated_data.get('doctorId')
        if role == 'doctor':
            doctor = doctor_for(request.user)
            if not doctor:
                return Response({'ok': True, 'data': []})
            doctor_id = doctor.id
        return Response({'ok': True, 'data': _cached_windows(store, doctor_id)})

    ser = ScheduleWriteSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    payload = to_window_payload(ser.validated_data)
    if role == 'doctor' and not payload.get('doctor_id'):
        doctor = doctor_for(request.user)
        payload['doctor_id'] = doctor.id if doctor else None
    ensure_can_manage_doctor(request.user, payload.get('doctor_id'))
    window = schedule_service.create_window(store, payload)
    invalidate_schedule_cache(window.doctor_id)
    log_action(user=request.user, action='schedule_create', object_type='AvailabilityWindow',
               object_id=window.id, detail=window.summary())
    return _window_response(window, status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrDoctorForWrites])
def schedule_detail(request, pk: int):
    store = AppointmentStore()
    window = store.get_window(pk)
    if request.method == 'GET':
        return _window_response(window)

    ensure_can_manage_doctor(request.user, window.doctor_id)
    if request.method == 'DELETE':
        schedule_service.delete_window(store, pk)
        invalidate_schedule_cache(window.doctor_id)
        log_action(user=request.user, action='schedule_delete', object_type='AvailabilityWindow',
                   object_id=pk, detail=window.summary())
        return Response({'ok': True, 'data': {'id': pk}})

    ser = ScheduleUpdateSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    updated = schedule_service.update_window(store, pk, to_window_payload(ser.validated_data))
    invalidate_schedule_cache(window.doctor_id)
    log_action(user=request.user, action='schedule_update', object_type='AvailabilityWindow',
               object_id=pk, detail={'old': window.summary(), 'new': updated.summary()})
    return _window_response(updated)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_schedules(request, doctor_id: int):
    store = AppointmentStore()
    if not store.doctor_exists(doctor_id):
        raise NotFoundError('Doctor not found')
    return Response({'ok': True, 'data': _cached_windows(store, doctor_id)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def available_schedules(request):
    """Schedules that can still take a booking on their next occurrence."""
    q = ScheduleListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    store = AppointmentStore()
    entries = list_open_windows(store, timezone.localdate(), doctor_id=q.validated_data.get('doctorId'))
    names = _doctor_names([e['window'] for e in entries])
    data = []
    for e in entries:
        item = window_to_dict(e['window'], names.get(e['window'].doctor_id, ''))
        item.update({
            'date': e['date'].isoformat(),
            'bookedCount': e['booked'],
            'remaining': e['remaining'],
        })
        data.append(item)
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminOrDoctorForWrites])
def schedule_reschedule(request, pk: int):
    """Edit a schedule and move its upcoming appointments along with it.

    Always answers 200 once the new values validate; per-appointment
    failures and notification problems are reported in the body.
    """
    store = AppointmentStore()
    window = store.get_window(pk)
    ensure_can_manage_doctor(request.user, window.doctor_id)
    ser = RescheduleSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    payload = to_window_payload(ser.validated_data)
    result = reschedule_window(
        store,
        pk,
        day_of_week=payload['day_of_week'],
        start_time=payload['start_time'],
        end_time=payload['end_time'],
        max_occupants=payload.get('max_occupants'),
        today=timezone.localdate(),
        notifier=Notifier(),
    )
    invalidate_schedule_cache(window.doctor_id)
    log_action(user=request.user, action='schedule_reschedule', object_type='AvailabilityWindow',
               object_id=pk, detail={
                   'affected': result.affected_ids,
                   'updated': result.updated_count,
                   'failed': result.failed_count,
                   'notification': result.notification,
               })
    return Response({'ok': True, 'data': result.to_dict()})

