"""
Custom permission classes and helpers for role based access control.
"""
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission, SAFE_METHODS

from booking.models import Doctor, Patient


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAdminOrDoctorForWrites(BasePermission):
    """Reads for any authenticated user; writes for admins and doctors."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        if request.method in SAFE_METHODS:
            return _role(request) is not None
        return _role(request) in {"admin", "doctor"}


def doctor_for(user):
    """The :class:`Doctor` linked to ``user`` or ``None``."""
    return Doctor.objects.filter(user_id=getattr(user, "id", None)).first()


def patient_for(user):
    return Patient.objects.filter(user_id=getattr(user, "id", None)).first()


def ensure_can_manage_doctor(user, doctor_id) -> None:
    """Admins manage every doctor's windows; doctors only their own."""
    role = getattr(user, "role", None)
    if role == "admin":
        return
    if role == "doctor":
        doctor = doctor_for(user)
        if doctor and str(doctor.id) == str(doctor_id):
            return
        raise PermissionDenied("You can only manage your own schedules")
    raise PermissionDenied("forbidden")
