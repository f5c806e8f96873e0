import bleach
from rest_framework import serializers

from booking.models import Appointment


class NewPatientSerializer(serializers.Serializer):
    firstName = serializers.CharField(max_length=100, required=False, allow_blank=True)
    lastName = serializers.CharField(max_length=100, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    dateOfBirth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(max_length=16, required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate(self, attrs):
        for key in ('firstName', 'lastName', 'phone', 'address'):
            if key in attrs:
                attrs[key] = bleach.clean((attrs[key] or '').strip(), strip=True)
        return attrs


class AppointmentCreateSerializer(serializers.Serializer):
    # Presence of the booking fields is checked by the booking engine so
    # that missing values are reported in its order and wording.
    patientId = serializers.IntegerField(required=False, allow_null=True)
    doctorId = serializers.IntegerField(required=False, allow_null=True)
    departmentId = serializers.IntegerField(required=False, allow_null=True)
    date = serializers.CharField(required=False, allow_blank=True)
    time = serializers.CharField(required=False, allow_blank=True)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    scheduleId = serializers.IntegerField(required=False, allow_null=True)
    newPatient = NewPatientSerializer(required=False, allow_null=True)


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=16)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class AppointmentListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)
    date = serializers.DateField(required=False)
    doctorId = serializers.IntegerField(required=False)
    patientId = serializers.IntegerField(required=False)


def new_patient_payload(data) -> dict | None:
    if not data:
        return None
    return {
        'first_name': data.get('firstName', ''),
        'last_name': data.get('lastName', ''),
        'email': data.get('email', ''),
        'phone': data.get('phone', ''),
        'date_of_birth': data.get('dateOfBirth'),
        'gender': data.get('gender', ''),
        'address': data.get('address', ''),
    }


def appointment_to_dict(a: Appointment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'patientName': a.patient.full_name,
        'doctorId': a.doctor_id,
        'doctorName': a.doctor.display_name,
        'departmentId': a.department_id,
        'departmentName': a.department.name if a.department else None,
        'date': a.date.isoformat(),
        'time': f"{a.time:%H:%M}",
        'reason': a.reason,
        'status': a.status,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }
