import datetime

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from booking.models import AvailabilityWindow, Department, Doctor, Patient, User
from booking.tests.fakes import InMemoryStore, RecordingNotifier

# 2026-10-19 is a Monday.
MONDAY = datetime.date(2026, 10, 19)


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def today():
    return MONDAY


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def department(db):
    return Department.objects.create(name='Cardiology')


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password='P@ssw0rd1', role='admin')


@pytest.fixture
def doctor_user(db):
    return User.objects.create_user(username='doctor1', password='P@ssw0rd1', role='doctor')


@pytest.fixture
def doctor(doctor_user, department):
    return Doctor.objects.create(user=doctor_user, first_name='Anna', last_name='Novak', department=department)


@pytest.fixture
def other_doctor(department):
    return Doctor.objects.create(first_name='Omar', last_name='Reyes', department=department)


@pytest.fixture
def patient_user(db):
    return User.objects.create_user(username='patient1', password='P@ssw0rd1', role='patient')


@pytest.fixture
def patient(patient_user):
    return Patient.objects.create(user=patient_user, first_name='Peter', last_name='Hale', email='peter@example.com')


@pytest.fixture
def window(doctor):
    return AvailabilityWindow.objects.create(
        doctor=doctor, day_of_week='Monday',
        start_time=datetime.time(9, 0), end_time=datetime.time(10, 0), max_occupants=2,
    )


@pytest.fixture
def client_for():
    def _make(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _make
