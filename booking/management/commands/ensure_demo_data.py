# booking/management/commands/ensure_demo_data.py
import datetime

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from booking.models import AvailabilityWindow, Department, Doctor, Patient, User

PASSWORD = "123456"

USERS = [
    ("admin1", "admin"),
    ("doctor1", "doctor"),
    ("patient1", "patient"),
]

WINDOWS = [
    ("Monday", datetime.time(9, 0), datetime.time(12, 0), 5),
    ("Wednesday", datetime.time(14, 0), datetime.time(17, 0), None),
]


class Command(BaseCommand):
    help = "Ensure a demo department, admin, doctor (with two weekly schedules) and patient exist; password=123456 (idempotent)."

    def _ensure_user(self, username, role):
        u, created = User.objects.get_or_create(
            username=username,
            defaults={"role": role, "password": make_password(PASSWORD), "is_active": True},
        )
        if not created:
            u.password = make_password(PASSWORD)
            u.role = role
            u.is_active = True
            u.save(update_fields=["password", "role", "is_active"])
        self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        return u

    @transaction.atomic
    def handle(self, *args, **opts):
        users = {role: self._ensure_user(username, role) for username, role in USERS}

        dept, _ = Department.objects.get_or_create(
            name="General Medicine", defaults={"description": "Outpatient general medicine"}
        )
        doctor, _ = Doctor.objects.get_or_create(
            user=users["doctor"],
            defaults={
                "first_name": "Anna",
                "last_name": "Novak",
                "email": "doctor1@example.com",
                "specialization": "Internal medicine",
                "department": dept,
            },
        )
        Patient.objects.get_or_create(
            user=users["patient"],
            defaults={"first_name": "Peter", "last_name": "Hale", "email": "patient1@example.com"},
        )

        for day, start, end, cap in WINDOWS:
            _, created = AvailabilityWindow.objects.get_or_create(
                doctor=doctor, day_of_week=day, start_time=start,
                defaults={"end_time": end, "max_occupants": cap},
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f"schedule: {doctor} {day} {start:%H:%M}-{end:%H:%M}"))

        self.stdout.write(self.style.SUCCESS("Demo data ensured."))
