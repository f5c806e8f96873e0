"""
Error taxonomy for the scheduling core and the unified API error handler.

Every scheduling error is a Django REST framework ``APIException`` so that
services can raise them directly and views simply let them propagate.
``api_exception_handler`` renders them (and any other DRF error) as
``{"ok": false, "error": {"code": ..., "message": ...}}``.
"""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class BookingError(APIException):
    """Base class for errors raised by the scheduling core."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'booking_error'
    default_detail = 'Booking request failed.'

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail, code=code)
        self.message = str(self.detail)

    def __str__(self) -> str:
        return self.message


class FormatError(BookingError):
    """Malformed time or date input."""
    default_code = 'format_error'
    default_detail = 'Please provide valid time format (HH:MM).'


class ValidationError(BookingError):
    """A required field is missing or invalid, or a store constraint failed."""
    default_code = 'validation_error'
    default_detail = 'Validation error.'


class CapacityExceededError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'capacity_exceeded'
    default_detail = 'This time slot is fully booked.'


class SlotTakenError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'slot_taken'
    default_detail = 'This time has already been taken by another patient.'


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'
    default_detail = 'Not found.'


class NotificationError(BookingError):
    """Best-effort delivery failed.  Never aborts the surrounding operation."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = 'notification_failed'
    default_detail = 'Notification could not be delivered.'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.error('Unhandled API error', exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    if isinstance(exc, BookingError):
        return Response(
            {'ok': False, 'error': {'code': exc.default_code, 'message': exc.message}},
            status=resp.status_code,
        )
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = getattr(exc, 'default_code', None) or 'api_error'
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code)
