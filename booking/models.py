"""
Database models for the appointment scheduling backend.

The scheduling core never touches these classes directly; it goes
through :class:`booking.services.store.AppointmentStore`, which turns rows
into plain value objects carrying identifiers only.  Departments, doctors
and patients are owned by the surrounding administration screens and are
modelled here only as far as booking needs them.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import F, Q


DAY_CHOICES = [
    ('Sunday', 'Sunday'),
    ('Monday', 'Monday'),
    ('Tuesday', 'Tuesday'),
    ('Wednesday', 'Wednesday'),
    ('Thursday', 'Thursday'),
    ('Friday', 'Friday'),
    ('Saturday', 'Saturday'),
]


class Department(models.Model):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Custom user model carrying the role used for visibility rules.

    A doctor or patient user is linked to its :class:`Doctor` or
    :class:`Patient` record through the reverse one-to-one relation.
    """
    ROLE_CHOICES = [
        ('patient', 'Patient'),
        ('doctor', 'Doctor'),
        ('admin', 'Administrator'),
    ]
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='patient')

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Doctor(models.Model):
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctor_profile'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    specialization = models.CharField(max_length=255, blank=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )

    @property
    def display_name(self) -> str:
        return f"Dr. {self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return self.display_name


class Patient(models.Model):
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_profile'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=16, blank=True)
    address = models.CharField(max_length=255, blank=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return self.full_name


class AvailabilityWindow(models.Model):
    """A doctor's recurring weekly slot (day + time range + capacity).

    ``max_occupants`` of ``None`` or ``0`` means the window is unlimited.
    """
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='windows')
    day_of_week = models.CharField(max_length=10, choices=DAY_CHOICES, db_index=True)
    start_time = models.TimeField()
    end_time = models.TimeField()
    max_occupants = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(end_time__gt=F('start_time')), name='window_end_after_start'),
        ]
        indexes = [
            models.Index(fields=['doctor', 'day_of_week'], name='window_doctor_day_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.doctor} {self.day_of_week} {self.start_time:%H:%M}-{self.end_time:%H:%M}"


class Appointment(models.Model):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no-show'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No show'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='appointments')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    date = models.DateField()
    time = models.TimeField()
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            # Final authority for "slot already taken"; the engine's own check is read-then-write.
            models.UniqueConstraint(
                fields=['doctor', 'date', 'time'],
                condition=Q(status='scheduled'),
                name='uniq_active_doctor_slot',
            ),
        ]
        indexes = [
            models.Index(fields=['doctor', 'date', 'status'], name='appt_doctor_date_status_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.patient} with {self.doctor} on {self.date} {self.time:%H:%M}"


class AppointmentChange(models.Model):
    """Records a date/time migration of an appointment."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='changes')
    change_type = models.CharField(max_length=32, default='rescheduled')
    old_date = models.DateField()
    old_time = models.TimeField()
    new_date = models.DateField()
    new_time = models.TimeField()
    reason = models.CharField(max_length=255, blank=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.appointment_id}: {self.old_date} {self.old_time} → {self.new_date} {self.new_time}"


class AppointmentStatusHistory(models.Model):
    """Records a status transition for an appointment."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=16, null=True, blank=True)
    to_status = models.CharField(max_length=16)
    changed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointment_transitions'
    )
    reason = models.CharField(max_length=255, blank=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.appointment_id}: {self.from_status} → {self.to_status}"


class Notification(models.Model):
    TYPE_CHOICES = [
        ('appointment', 'Appointment'),
        ('schedule_change', 'Schedule change'),
        ('system', 'System'),
    ]
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    message = models.TextField()
    notification_type = models.CharField(max_length=32, choices=TYPE_CHOICES, default='system')
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['user', 'is_read', 'created_at'], name='notif_user_read_idx')]

    def __str__(self) -> str:
        return f"notification {self.id} -> {self.user_id}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_idx'),
        ]
