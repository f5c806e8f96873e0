"""
URL mappings for the scheduling API.

Paths carry no trailing slash, matching the front-end's endpoint table.
The static ``doctor/`` and ``available`` routes are listed before the
``<int:pk>`` routes they would otherwise shadow.
"""
from django.urls import path, include

from .views import appointments, health, notifications, schedules


urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),
    # Doctor schedules
    path('api/doctor-schedules', schedules.schedules, name='schedules'),
    path('api/doctor-schedules/available', schedules.available_schedules, name='schedules_available'),
    path('api/doctor-schedules/doctor/<int:doctor_id>', schedules.doctor_schedules, name='doctor_schedules'),
    path('api/doctor-schedules/<int:pk>', schedules.schedule_detail, name='schedule_detail'),
    path('api/doctor-schedules/<int:pk>/reschedule', schedules.schedule_reschedule, name='schedule_reschedule'),
    # Appointments
    path('api/appointments', appointments.appointments, name='appointments'),
    path('api/appointments/<int:pk>', appointments.appointment_detail, name='appointment_detail'),
    path('api/appointments/<int:pk>/status', appointments.appointment_status, name='appointment_status'),
    # Notifications
    path('api/notifications', notifications.notifications, name='notifications'),
    path('api/notifications/<int:pk>/read', notifications.notification_read, name='notification_read'),
]
