"""
Django admin registrations for the booking models.

Departments, doctors and patients are maintained here by superusers; the
scheduling API only reads them.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AppointmentChange,
    AppointmentStatusHistory,
    AuditEvent,
    AvailabilityWindow,
    Department,
    Doctor,
    Notification,
    Patient,
    User,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'created_at')
    search_fields = ('name',)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name', 'email')


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('id', 'first_name', 'last_name', 'specialization', 'department', 'user')
    list_filter = ('department',)
    search_fields = ('first_name', 'last_name', 'email')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'first_name', 'last_name', 'email', 'phone', 'user')
    search_fields = ('first_name', 'last_name', 'email', 'phone')


@admin.register(AvailabilityWindow)
class AvailabilityWindowAdmin(admin.ModelAdmin):
    list_display = ('id', 'doctor', 'day_of_week', 'start_time', 'end_time', 'max_occupants')
    list_filter = ('day_of_week', 'doctor')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'date', 'time', 'status')
    list_filter = ('status', 'doctor', 'date')
    search_fields = ('patient__first_name', 'patient__last_name', 'doctor__last_name')


@admin.register(AppointmentChange)
class AppointmentChangeAdmin(admin.ModelAdmin):
    list_display = ('appointment', 'old_date', 'old_time', 'new_date', 'new_time', 'changed_at')


@admin.register(AppointmentStatusHistory)
class AppointmentStatusHistoryAdmin(admin.ModelAdmin):
    list_display = ('appointment', 'from_status', 'to_status', 'changed_by', 'changed_at')
    list_filter = ('to_status',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'notification_type', 'is_read', 'created_at')
    list_filter = ('notification_type', 'is_read')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'object_type', 'object_id', 'created_at')
    list_filter = ('action',)
