"""
Integration tests for the scheduling API.

These tests exercise schedule management, booking, reschedule
propagation, role based visibility and the unified error envelope.  The
tests use Django REST framework's APIClient within the APITestCase base
class.

To run the tests:

```
pytest -q booking/tests
```
"""
import datetime

from django.core import mail
from django.core.cache import cache
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import (
    Appointment,
    AppointmentChange,
    AuditEvent,
    AvailabilityWindow,
    Department,
    Doctor,
    Notification,
    Patient,
    User,
)
from ..services.projection import next_occurrence


class SchedulingAPITests(APITestCase):
    def setUp(self) -> None:
        """Create a department, users for every role, a doctor schedule and a patient."""
        cache.clear()
        self.department = Department.objects.create(name="Cardiology")
        self.admin_user = User.objects.create_user(username="admin1", password="adminpass", role="admin")
        self.doctor_user = User.objects.create_user(username="doctor1", password="doctorpass", role="doctor")
        self.doctor = Doctor.objects.create(
            user=self.doctor_user, first_name="Anna", last_name="Novak", department=self.department,
        )
        self.other_doctor = Doctor.objects.create(first_name="Omar", last_name="Reyes", department=self.department)
        self.patient_user = User.objects.create_user(username="patient1", password="patientpass", role="patient")
        self.patient = Patient.objects.create(
            user=self.patient_user, first_name="Peter", last_name="Hale", email="peter@example.com",
        )
        self.other_patient_user = User.objects.create_user(username="patient2", password="patientpass", role="patient")
        self.other_patient = Patient.objects.create(
            user=self.other_patient_user, first_name="Lea", last_name="Ward", email="lea@example.com",
        )
        self.window = AvailabilityWindow.objects.create(
            doctor=self.doctor, day_of_week="Monday",
            start_time=datetime.time(9, 0), end_time=datetime.time(10, 0), max_occupants=2,
        )
        self.today = timezone.localdate()
        self.monday = next_occurrence("Monday", self.today)

    def authenticate(self, user: User) -> APIClient:
        """Return an authenticated APIClient for the given user."""
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def book(self, client, time="09:30", **extra):
        body = {
            "doctorId": self.doctor.id,
            "departmentId": self.department.id,
            "date": self.monday.isoformat(),
            "time": time,
            "scheduleId": self.window.id,
        }
        body.update(extra)
        return client.post("/api/appointments", body, format="json")

    # -- schedules --------------------------------------------------------

    def test_admin_creates_schedule_and_overlap_is_rejected(self):
        client = self.authenticate(self.admin_user)
        body = {"doctorId": self.doctor.id, "dayOfWeek": "Tuesday", "startTime": "13:00", "endTime": "15:00",
                "maxOccupants": 4}
        response = client.post("/api/doctor-schedules", body, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["ok"])
        self.assertEqual(response.data["data"]["startTime"], "13:00")
        self.assertEqual(response.data["data"]["doctorName"], "Dr. Anna Novak")

        body.update({"startTime": "14:00", "endTime": "16:00"})
        response = client.post("/api/doctor-schedules", body, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data["ok"])
        self.assertEqual(response.data["error"]["code"], "validation_error")
        self.assertIn("overlapping", response.data["error"]["message"])
        self.assertTrue(AuditEvent.objects.filter(action="schedule_create").exists())

    def test_invalid_time_range_is_a_format_error(self):
        client = self.authenticate(self.admin_user)
        body = {"doctorId": self.doctor.id, "dayOfWeek": "Friday", "startTime": "15:00", "endTime": "14:00"}
        response = client.post("/api/doctor-schedules", body, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "format_error")
        self.assertEqual(response.data["error"]["message"], "End time must be after start time")

    def test_doctor_manages_only_own_schedules(self):
        client = self.authenticate(self.doctor_user)
        body = {"dayOfWeek": "Friday", "startTime": "08:00", "endTime": "09:00"}
        response = client.post("/api/doctor-schedules", body, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"]["doctorId"], self.doctor.id)

        body["doctorId"] = self.other_doctor.id
        response = client.post("/api/doctor-schedules", body, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_patient_cannot_write_schedules(self):
        client = self.authenticate(self.patient_user)
        response = client.get("/api/doctor-schedules")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["data"]), 1)
        response = client.delete(f"/api/doctor-schedules/{self.window.id}")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(AvailabilityWindow.objects.filter(id=self.window.id).exists())

    def test_schedule_listing_cache_is_invalidated_on_write(self):
        client = self.authenticate(self.admin_user)
        self.assertEqual(len(client.get(reverse("doctor_schedules", args=[self.doctor.id])).data["data"]), 1)
        client.post("/api/doctor-schedules", {
            "doctorId": self.doctor.id, "dayOfWeek": "Thursday", "startTime": "10:00", "endTime": "11:00",
        }, format="json")
        self.assertEqual(len(client.get(reverse("doctor_schedules", args=[self.doctor.id])).data["data"]), 2)
        self.assertEqual(len(client.get("/api/doctor-schedules").data["data"]), 2)

        response = client.put(f"/api/doctor-schedules/{self.window.id}", {"endTime": "11:00"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        listed = {w["id"]: w for w in client.get("/api/doctor-schedules").data["data"]}
        self.assertEqual(listed[self.window.id]["endTime"], "11:00")

    def test_unknown_schedule_and_doctor(self):
        client = self.authenticate(self.admin_user)
        response = client.get("/api/doctor-schedules/9999")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"]["code"], "not_found")
        response = client.get(reverse("doctor_schedules", args=[9999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_available_schedules_report_remaining_capacity(self):
        client = self.authenticate(self.patient_user)
        data = client.get(reverse("schedules_available")).data["data"]
        self.assertEqual(data[0]["remaining"], 2)
        self.assertEqual(data[0]["date"], self.monday.isoformat())

        self.book(self.authenticate(self.patient_user), "09:00")
        self.book(self.authenticate(self.other_patient_user), "09:15")
        data = client.get(reverse("schedules_available")).data["data"]
        self.assertEqual(data, [])

    # -- booking ----------------------------------------------------------

    def test_patient_books_own_appointment(self):
        client = self.authenticate(self.patient_user)
        response = self.book(client, reason="<i>Palpitations</i>", patientId=self.other_patient.id)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.book(client, reason="<i>Palpitations</i>")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data["data"]
        self.assertEqual(data["patientId"], self.patient.id)
        self.assertEqual(data["time"], "09:30")
        self.assertEqual(data["reason"], "Palpitations")
        self.assertEqual(data["doctorName"], "Dr. Anna Novak")
        self.assertTrue(Notification.objects.filter(user=self.doctor_user, notification_type="appointment").exists())
        self.assertTrue(AuditEvent.objects.filter(action="appointment_create", object_id=data["id"]).exists())

    def test_taken_slot_and_capacity_conflicts(self):
        self.assertEqual(self.book(self.authenticate(self.patient_user), "09:30").status_code, 201)

        response = self.book(self.authenticate(self.other_patient_user), "09:30")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "slot_taken")
        self.assertIn("Dr. Anna Novak", response.data["error"]["message"])

        admin = self.authenticate(self.admin_user)
        self.assertEqual(self.book(admin, "09:31", patientId=self.other_patient.id).status_code, 201)
        response = self.book(admin, "09:45", newPatient={
            "firstName": "Kim", "lastName": "Lo", "email": "kim@example.com",
        })
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "capacity_exceeded")
        self.assertFalse(Patient.objects.filter(email="kim@example.com").exists())

    def test_booking_validation_errors(self):
        client = self.authenticate(self.admin_user)
        response = client.post("/api/appointments", {"patientId": self.patient.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["message"], "Please select a doctor")

        response = self.book(client, "9:30", patientId=self.patient.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "format_error")

    def test_admin_books_for_new_patient(self):
        client = self.authenticate(self.admin_user)
        response = self.book(client, "09:10", newPatient={
            "firstName": "Kim", "lastName": "Lo", "email": "kim@example.com", "phone": "555-0100",
        })
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"]["patientName"], "Kim Lo")

    # -- visibility and status ---------------------------------------------

    def test_patients_only_see_their_own_appointments(self):
        self.book(self.authenticate(self.patient_user), "09:00")
        self.book(self.authenticate(self.other_patient_user), "09:15")

        mine = self.authenticate(self.patient_user).get("/api/appointments").data["data"]
        self.assertEqual([a["patientId"] for a in mine], [self.patient.id])
        everything = self.authenticate(self.admin_user).get("/api/appointments").data["data"]
        self.assertEqual(len(everything), 2)
        filtered = self.authenticate(self.admin_user).get(
            "/api/appointments", {"patientId": self.other_patient.id}).data["data"]
        self.assertEqual(len(filtered), 1)

        other_id = Appointment.objects.get(patient=self.other_patient).id
        response = self.authenticate(self.patient_user).get(f"/api/appointments/{other_id}")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_status_changes(self):
        appt_id = self.book(self.authenticate(self.patient_user), "09:00").data["data"]["id"]

        response = self.authenticate(self.patient_user).post(
            reverse("appointment_status", args=[appt_id]), {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        doctor = self.authenticate(self.doctor_user)
        response = doctor.post(reverse("appointment_status", args=[appt_id]), {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["status"], "confirmed")

        response = self.authenticate(self.patient_user).post(
            reverse("appointment_status", args=[appt_id]), {"status": "cancelled"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = doctor.post(reverse("appointment_status", args=[appt_id]), {"status": "completed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Appointment.objects.get(id=appt_id).status_history.count(), 2)

    # -- reschedule ---------------------------------------------------------

    def test_reschedule_moves_appointments_and_notifies(self):
        appt_id = self.book(self.authenticate(self.patient_user), "09:30").data["data"]["id"]
        client = self.authenticate(self.doctor_user)
        response = client.post(reverse("schedule_reschedule", args=[self.window.id]), {
            "dayOfWeek": "Tuesday", "startTime": "14:00", "endTime": "15:00", "maxOccupants": 2,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data["data"]
        self.assertTrue(data["windowUpdated"])
        self.assertEqual(data["successfulUpdates"], 1)
        self.assertEqual(data["failedUpdates"], 0)
        self.assertEqual(data["notification"], "dispatched")
        self.assertEqual(data["affectedIds"], [appt_id])

        appt = Appointment.objects.get(id=appt_id)
        self.assertEqual(appt.date, next_occurrence("Tuesday", self.today))
        self.assertEqual(appt.time, datetime.time(14, 30))
        self.assertEqual(AppointmentChange.objects.filter(appointment=appt).count(), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["peter@example.com"])
        self.assertTrue(Notification.objects.filter(user=self.patient_user, notification_type="schedule_change").exists())

        listed = client.get("/api/doctor-schedules").data["data"]
        self.assertEqual(listed[0]["dayOfWeek"], "Tuesday")

    def test_reschedule_without_appointments(self):
        client = self.authenticate(self.admin_user)
        response = client.post(reverse("schedule_reschedule", args=[self.window.id]), {
            "dayOfWeek": "Monday", "startTime": "10:00", "endTime": "11:00",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["notification"], "skipped")
        self.assertIn("no appointments found for this schedule", response.data["data"]["message"])
        self.assertEqual(len(mail.outbox), 0)

    def test_other_doctor_cannot_reschedule(self):
        other_user = User.objects.create_user(username="doctor2", password="doctorpass", role="doctor")
        self.other_doctor.user = other_user
        self.other_doctor.save()
        response = self.authenticate(other_user).post(reverse("schedule_reschedule", args=[self.window.id]), {
            "dayOfWeek": "Tuesday", "startTime": "14:00", "endTime": "15:00",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # -- notifications and misc ---------------------------------------------

    def test_notifications_can_be_read(self):
        self.book(self.authenticate(self.patient_user), "09:30")
        client = self.authenticate(self.doctor_user)
        response = client.get(reverse("notifications"))
        self.assertEqual(response.data["unreadCount"], 1)
        note_id = response.data["data"][0]["id"]
        response = client.post(reverse("notification_read", args=[note_id]))
        self.assertTrue(response.data["data"]["isRead"])
        self.assertEqual(client.get(reverse("notifications"), {"unread": "1"}).data["data"], [])

        response = self.authenticate(self.patient_user).post(reverse("notification_read", args=[note_id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_anonymous_requests_are_rejected(self):
        response = APIClient().get("/api/appointments")
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertFalse(response.data["ok"])

    def test_healthz(self):
        response = self.client.get(reverse("healthz"))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["ok"])
