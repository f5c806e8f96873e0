from rest_framework import serializers

from booking.services.types import Window


class ScheduleWriteSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(required=False)
    dayOfWeek = serializers.CharField(max_length=10)
    startTime = serializers.CharField(max_length=5)
    endTime = serializers.CharField(max_length=5)
    maxOccupants = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class ScheduleUpdateSerializer(serializers.Serializer):
    dayOfWeek = serializers.CharField(max_length=10, required=False)
    startTime = serializers.CharField(max_length=5, required=False)
    endTime = serializers.CharField(max_length=5, required=False)
    maxOccupants = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class RescheduleSerializer(serializers.Serializer):
    dayOfWeek = serializers.CharField(max_length=10)
    startTime = serializers.CharField(max_length=5)
    endTime = serializers.CharField(max_length=5)
    maxOccupants = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class ScheduleListQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(required=False)


FIELD_MAP = {
    'doctorId': 'doctor_id',
    'dayOfWeek': 'day_of_week',
    'startTime': 'start_time',
    'endTime': 'end_time',
    'maxOccupants': 'max_occupants',
}


def to_window_payload(data: dict) -> dict:
    """camelCase request data -> the scheduling core's field names."""
    return {FIELD_MAP[k]: v for k, v in data.items() if k in FIELD_MAP}


def window_to_dict(window: Window, doctor_name: str = '') -> dict:
    data = window.summary()
    data.pop('date')
    data.update({'id': window.id, 'doctorId': window.doctor_id, 'doctorName': doctor_name})
    return data
