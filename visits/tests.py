"""
Tests for visit recording.

Covers:
- create_visit overwrites the patient's follow-up summary
- A new visit resets reminder bookkeeping (count and last sent)
- Visits API: owner scoping, validation, reset side effect through the API
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from patients.models import Patient
from visits.models import Visit
from visits.services import create_visit

User = get_user_model()

CLINIC_TZ = ZoneInfo("Africa/Kinshasa")


class CreateVisitTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_visit", password="testpass123")

    def setUp(self):
        self.patient = Patient.objects.create(
            first_name="Alice",
            last_name="Mwamba",
            phone="+243812345678",
            last_visit_date=date(2024, 1, 1),
            next_scheduled_visit=date(2024, 2, 1),
            reminder_count=3,
            last_reminder_sent=datetime(2024, 2, 9, 10, 0, tzinfo=CLINIC_TZ),
            created_by=self.user,
        )

    def test_visit_resets_reminder_bookkeeping(self):
        visit = create_visit(self.patient, self.user, visit_date=date(2024, 2, 10))

        self.patient.refresh_from_db()
        self.assertEqual(visit.patient, self.patient)
        self.assertEqual(self.patient.reminder_count, 0)
        self.assertIsNone(self.patient.last_reminder_sent)

    def test_visit_overwrites_follow_up_summary(self):
        create_visit(
            self.patient,
            self.user,
            visit_date=date(2024, 2, 10),
            next_visit_date=date(2024, 3, 1),
            diagnosis="Otitis",
            visit_type="FOLLOW_UP",
        )

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.last_visit_date, date(2024, 2, 10))
        self.assertEqual(self.patient.next_scheduled_visit, date(2024, 3, 1))

    def test_visit_without_next_date_clears_override(self):
        create_visit(self.patient, self.user, visit_date=date(2024, 2, 10))

        self.patient.refresh_from_db()
        self.assertIsNone(self.patient.next_scheduled_visit)

    def test_backdated_visit_still_overwrites(self):
        create_visit(self.patient, self.user, visit_date=date(2023, 12, 1))

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.last_visit_date, date(2023, 12, 1))
        self.assertEqual(self.patient.reminder_count, 0)

    def test_visit_date_defaults_to_today(self):
        visit = create_visit(self.patient, self.user)
        self.assertIsNotNone(visit.visit_date)
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.last_visit_date, visit.visit_date)

    def test_stale_patient_instance_is_not_saved_back(self):
        stale = Patient.objects.get(pk=self.patient.pk)
        Patient.objects.filter(pk=self.patient.pk).update(phone="+243899999999")

        create_visit(stale, self.user, visit_date=date(2024, 2, 10))

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.phone, "+243899999999")


class VisitAPITest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_visit_api", password="testpass123")
        cls.other = User.objects.create_user(username="doc_visit_other", password="testpass123")
        cls.patient = Patient.objects.create(
            first_name="Bob", last_name="Nzuzi", created_by=cls.user,
        )
        cls.foreign = Patient.objects.create(
            first_name="Carl", last_name="Other", created_by=cls.other,
        )

    def setUp(self):
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_create_visit_resets_bookkeeping(self):
        Patient.objects.filter(pk=self.patient.pk).update(
            reminder_count=1,
            last_reminder_sent=datetime(2024, 2, 9, 10, 0, tzinfo=CLINIC_TZ),
        )

        response = self.client.post(
            "/api/visits/",
            {
                "patient": self.patient.id,
                "visit_date": "2024-02-10",
                "next_visit_date": "2024-03-15",
                "diagnosis": "Malaria",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["created_by"], self.user.id)
        self.assertEqual(response.data["patient_name"], "Bob Nzuzi")

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 0)
        self.assertIsNone(self.patient.last_reminder_sent)
        self.assertEqual(self.patient.last_visit_date, date(2024, 2, 10))
        self.assertEqual(self.patient.next_scheduled_visit, date(2024, 3, 15))

    def test_next_visit_before_visit_rejected(self):
        response = self.client.post(
            "/api/visits/",
            {"patient": self.patient.id, "visit_date": "2024-02-10", "next_visit_date": "2024-02-01"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("next_visit_date", response.data)
        self.assertEqual(Visit.objects.count(), 0)

    def test_cannot_record_visit_for_other_clinicians_patient(self):
        response = self.client.post(
            "/api/visits/",
            {"patient": self.foreign.id, "visit_date": "2024-02-10"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("patient", response.data)

    def test_cannot_record_visit_for_archived_patient(self):
        Patient.objects.filter(pk=self.patient.pk).update(is_active=False)
        response = self.client.post(
            "/api/visits/",
            {"patient": self.patient.id, "visit_date": "2024-02-10"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_filtered_by_patient(self):
        create_visit(self.patient, self.user, visit_date=date(2024, 1, 1))
        latest = create_visit(self.patient, self.user, visit_date=date(2024, 2, 1))
        create_visit(self.foreign, self.other, visit_date=date(2024, 2, 1))

        response = self.client.get("/api/visits/", {"patient": self.patient.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual(response.data["results"][0]["id"], latest.id)

        foreign = self.client.get("/api/visits/", {"patient": self.foreign.id})
        self.assertEqual(foreign.data["count"], 0)

    def test_detail_scoped_to_owner(self):
        visit = create_visit(self.foreign, self.other, visit_date=date(2024, 2, 1))
        response = self.client.get(f"/api/visits/{visit.id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_visit_date_defaults_when_omitted(self):
        response = self.client.post("/api/visits/", {"patient": self.patient.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNotNone(response.data["visit_date"])
        self.assertLessEqual(
            date.fromisoformat(response.data["visit_date"]),
            date.today() + timedelta(days=1),
        )
