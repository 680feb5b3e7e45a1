"""
Tests for follow-up tracking.

Covers:
- Follow-up classification (no visit, on track, due soon, overdue, override)
- Calendar-date truncation in the clinic time zone
- Follow-up configuration validation
- Patient state read model, list ordering/filtering, dashboard counts
- Patients API: owner scoping, as_of override, status filter, archive/restore
"""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from patients.aggregate import build_patient_state, list_patient_states, summarize
from patients.followup import (
    FollowUpConfig,
    FollowUpStatus,
    as_local_date,
    classify,
    due_date_for,
)
from patients.models import Patient

User = get_user_model()

CLINIC_TZ = ZoneInfo("Africa/Kinshasa")
CONFIG = FollowUpConfig(interval_days=35, due_soon_days=7, cooldown_hours=24)


def at_local(y, m, d, hour=9, minute=0):
    return datetime(y, m, d, hour, minute, tzinfo=CLINIC_TZ)


# =========================================================================
# Follow-up classification
# =========================================================================
class ClassifyTest(SimpleTestCase):
    """Pure classification; patients are unsaved model instances."""

    def test_no_visit_is_no_visit_for_any_date(self):
        patient = Patient(first_name="Ada")
        for as_of in (at_local(2020, 1, 1), at_local(2024, 2, 10), at_local(2030, 12, 31)):
            state = classify(patient, as_of, CONFIG)
            self.assertEqual(state.status, FollowUpStatus.NO_VISIT)
            self.assertIsNone(state.due_date)
            self.assertIsNone(state.days_overdue)
            self.assertIsNone(state.days_until_due)

    def test_overdue_by_five_days(self):
        patient = Patient(first_name="Ada", last_visit_date=date(2024, 1, 1))
        state = classify(patient, at_local(2024, 2, 10), CONFIG)
        self.assertEqual(state.status, FollowUpStatus.OVERDUE)
        self.assertEqual(state.due_date, date(2024, 2, 5))
        self.assertEqual(state.days_overdue, 5)
        self.assertIsNone(state.days_until_due)

    def test_on_due_date_is_not_overdue(self):
        patient = Patient(first_name="Ada", last_visit_date=date(2024, 1, 1))
        state = classify(patient, at_local(2024, 2, 5, hour=23, minute=59), CONFIG)
        self.assertEqual(state.status, FollowUpStatus.DUE_SOON)
        self.assertEqual(state.days_until_due, 0)

    def test_eight_days_after_due_date(self):
        patient = Patient(first_name="Ada", next_scheduled_visit=date(2024, 3, 1))
        state = classify(patient, at_local(2024, 3, 9), CONFIG)
        self.assertEqual(state.status, FollowUpStatus.OVERDUE)
        self.assertEqual(state.days_overdue, 8)

    def test_due_soon_window_is_inclusive(self):
        patient = Patient(first_name="Ada", last_visit_date=date(2024, 1, 1))
        # due 2024-02-05, seven days before
        state = classify(patient, at_local(2024, 1, 29), CONFIG)
        self.assertEqual(state.status, FollowUpStatus.DUE_SOON)
        self.assertEqual(state.days_until_due, 7)

    def test_on_track_reports_days_until_due(self):
        patient = Patient(first_name="Ada", last_visit_date=date(2024, 1, 1))
        state = classify(patient, at_local(2024, 1, 10), CONFIG)
        self.assertEqual(state.status, FollowUpStatus.ON_TRACK)
        self.assertEqual(state.days_until_due, 26)
        self.assertFalse(state.is_remindable)

    def test_scheduled_visit_overrides_interval(self):
        patient = Patient(
            first_name="Ada",
            last_visit_date=date(2024, 1, 1),
            next_scheduled_visit=date(2024, 3, 20),
        )
        self.assertEqual(due_date_for(patient, CONFIG), date(2024, 3, 20))
        state = classify(patient, at_local(2024, 2, 10), CONFIG)
        self.assertEqual(state.status, FollowUpStatus.ON_TRACK)
        self.assertEqual(state.due_date, date(2024, 3, 20))

    def test_custom_interval(self):
        patient = Patient(first_name="Ada", last_visit_date=date(2024, 1, 1))
        config = FollowUpConfig(interval_days=10, due_soon_days=3)
        state = classify(patient, at_local(2024, 1, 13), config)
        self.assertEqual(state.status, FollowUpStatus.OVERDUE)
        self.assertEqual(state.days_overdue, 2)


class ClinicDateTruncationTest(SimpleTestCase):
    """Day counts use the calendar date in the clinic time zone."""

    def test_utc_evening_is_next_local_day(self):
        # 23:30 UTC on the 5th is 00:30 on the 6th in Kinshasa (UTC+1)
        as_of = datetime(2024, 2, 5, 23, 30, tzinfo=dt_timezone.utc)
        self.assertEqual(as_local_date(as_of), date(2024, 2, 6))

        patient = Patient(first_name="Ada", last_visit_date=date(2024, 1, 1))
        state = classify(patient, as_of, CONFIG)
        self.assertEqual(state.status, FollowUpStatus.OVERDUE)
        self.assertEqual(state.days_overdue, 1)

    def test_plain_date_passes_through(self):
        self.assertEqual(as_local_date(date(2024, 2, 6)), date(2024, 2, 6))


class FollowUpConfigTest(SimpleTestCase):

    def test_defaults(self):
        config = FollowUpConfig()
        self.assertEqual(config.interval_days, 35)
        self.assertEqual(config.due_soon_days, 7)
        self.assertEqual(config.cooldown_hours, 24)

    def test_rejects_invalid_values(self):
        with self.assertRaises(ValueError):
            FollowUpConfig(interval_days=0)
        with self.assertRaises(ValueError):
            FollowUpConfig(interval_days=5, due_soon_days=6)
        with self.assertRaises(ValueError):
            FollowUpConfig(cooldown_hours=-1)

    @override_settings(FOLLOW_UP_INTERVAL_DAYS=28, FOLLOW_UP_DUE_SOON_DAYS=3, REMINDER_COOLDOWN_HOURS=48)
    def test_from_settings(self):
        config = FollowUpConfig.from_settings()
        self.assertEqual(config, FollowUpConfig(28, 3, 48))


# =========================================================================
# Patient model
# =========================================================================
class PatientModelTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_model", password="testpass123")

    def test_patient_code_generated_on_create(self):
        patient = Patient.objects.create(first_name="Marie", last_name="Kabila", created_by=self.user)
        self.assertEqual(patient.patient_code, f"PT-{patient.id:06d}")
        self.assertEqual(patient.full_name, "Marie Kabila")

    def test_new_patient_has_no_reminder_bookkeeping(self):
        patient = Patient.objects.create(first_name="Marie", created_by=self.user)
        self.assertEqual(patient.reminder_count, 0)
        self.assertIsNone(patient.last_reminder_sent)


# =========================================================================
# Read model
# =========================================================================
class PatientStateTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_state", password="testpass123")
        cls.overdue = Patient.objects.create(
            first_name="Zoe", last_name="Amisi", phone="0812345678",
            last_visit_date=date(2024, 1, 1), created_by=cls.user,
        )
        cls.very_overdue = Patient.objects.create(
            first_name="Yves", last_name="Bolamba", phone="0812345679",
            last_visit_date=date(2023, 11, 1), created_by=cls.user,
        )
        cls.on_track = Patient.objects.create(
            first_name="Xavier", last_name="Cito",
            last_visit_date=date(2024, 2, 1), created_by=cls.user,
        )
        cls.due_soon = Patient.objects.create(
            first_name="Wendy", last_name="Dibwe",
            next_scheduled_visit=date(2024, 2, 13), created_by=cls.user,
        )
        cls.no_visit = Patient.objects.create(
            first_name="Victor", last_name="Ebondo", created_by=cls.user,
        )
        cls.as_of = at_local(2024, 2, 10)

    def test_state_for_overdue_patient(self):
        state = build_patient_state(self.overdue, self.as_of, CONFIG)
        self.assertEqual(state["status"], FollowUpStatus.OVERDUE)
        self.assertEqual(state["due_date"], date(2024, 2, 5))
        self.assertEqual(state["days_overdue"], 5)
        self.assertEqual(state["reminder_count"], 0)
        self.assertTrue(state["can_send_reminder"])
        self.assertEqual(state["hours_remaining"], 0)
        self.assertIsNone(state["next_allowed_at"])
        self.assertEqual(state["reminder_status"], "No reminders sent yet")

    def test_state_during_cooldown(self):
        patient = Patient(
            first_name="Zoe",
            last_visit_date=date(2024, 1, 1),
            reminder_count=1,
            last_reminder_sent=self.as_of - timedelta(hours=3),
        )
        state = build_patient_state(patient, self.as_of, CONFIG)
        self.assertFalse(state["can_send_reminder"])
        self.assertEqual(state["hours_remaining"], 21)
        self.assertEqual(state["next_allowed_at"], self.as_of + timedelta(hours=21))
        self.assertIn("Next reminder available in 21 hours", state["reminder_status"])

    def test_on_track_patient_cannot_be_reminded(self):
        state = build_patient_state(self.on_track, self.as_of, CONFIG)
        self.assertEqual(state["status"], FollowUpStatus.ON_TRACK)
        self.assertFalse(state["can_send_reminder"])

    def test_archived_patient_cannot_be_reminded(self):
        patient = Patient(first_name="Zoe", last_visit_date=date(2024, 1, 1), is_active=False)
        self.assertFalse(build_patient_state(patient, self.as_of, CONFIG)["can_send_reminder"])

    def test_due_date_ordering_puts_most_overdue_first(self):
        items = list_patient_states(Patient.objects.all(), self.as_of, CONFIG, ordering="due_date")
        names = [p.first_name for p, _ in items]
        self.assertEqual(names, ["Yves", "Zoe", "Wendy", "Xavier", "Victor"])

    def test_default_ordering_is_alphabetical(self):
        items = list_patient_states(Patient.objects.all(), self.as_of, CONFIG)
        names = [p.last_name for p, _ in items]
        self.assertEqual(names, ["Amisi", "Bolamba", "Cito", "Dibwe", "Ebondo"])

    def test_newest_first_ordering(self):
        items = list_patient_states(Patient.objects.all(), self.as_of, CONFIG, ordering="-created_at")
        self.assertEqual(items[0][0], self.no_visit)
        self.assertEqual(items[-1][0], self.overdue)

    def test_status_filter(self):
        items = list_patient_states(Patient.objects.all(), self.as_of, CONFIG, status="overdue")
        self.assertEqual({p.pk for p, _ in items}, {self.overdue.pk, self.very_overdue.pk})

    def test_unknown_status_or_ordering_rejected(self):
        with self.assertRaises(ValueError):
            list_patient_states(Patient.objects.all(), self.as_of, CONFIG, status="late")
        with self.assertRaises(ValueError):
            list_patient_states(Patient.objects.all(), self.as_of, CONFIG, ordering="phone")

    def test_states_are_recomputed_for_each_as_of(self):
        earlier = list_patient_states(Patient.objects.filter(pk=self.overdue.pk), at_local(2024, 1, 10), CONFIG)
        later = list_patient_states(Patient.objects.filter(pk=self.overdue.pk), self.as_of, CONFIG)
        self.assertEqual(earlier[0][1]["status"], FollowUpStatus.ON_TRACK)
        self.assertEqual(later[0][1]["status"], FollowUpStatus.OVERDUE)

    def test_summarize(self):
        items = list_patient_states(Patient.objects.all(), self.as_of, CONFIG)
        summary = summarize(state for _, state in items)
        self.assertEqual(summary, {
            "total": 5,
            "no_visit": 1,
            "on_track": 1,
            "due_soon": 1,
            "overdue": 2,
        })


# =========================================================================
# API
# =========================================================================
class PatientAPITest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_api", password="testpass123")
        cls.other = User.objects.create_user(username="doc_other", password="testpass123")
        cls.overdue = Patient.objects.create(
            first_name="Alice", last_name="Mwamba", phone="+243812345678",
            last_visit_date=date(2024, 1, 1), created_by=cls.user,
        )
        cls.on_track = Patient.objects.create(
            first_name="Bob", last_name="Nzuzi",
            last_visit_date=date(2024, 2, 1), created_by=cls.user,
        )
        cls.foreign = Patient.objects.create(
            first_name="Carl", last_name="Other",
            last_visit_date=date(2024, 1, 1), created_by=cls.other,
        )

    def setUp(self):
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_requires_authentication(self):
        response = APIClient().get("/api/patients/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_only_own_patients_with_state(self):
        response = self.client.get("/api/patients/", {"as_of": "2024-02-10"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 2)

        rows = {row["id"]: row for row in response.data["results"]}
        self.assertNotIn(self.foreign.id, rows)
        self.assertEqual(rows[self.overdue.id]["status"], "overdue")
        self.assertEqual(rows[self.overdue.id]["days_overdue"], 5)
        self.assertEqual(rows[self.overdue.id]["due_date"], "2024-02-05")
        self.assertTrue(rows[self.overdue.id]["can_send_reminder"])
        self.assertEqual(rows[self.on_track.id]["status"], "on_track")

    def test_status_filter_and_due_date_ordering(self):
        response = self.client.get(
            "/api/patients/", {"as_of": "2024-02-10", "status": "overdue", "ordering": "due_date"},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data["results"]], [self.overdue.id])

    def test_invalid_status_is_400(self):
        response = self.client.get("/api/patients/", {"status": "late"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertEqual(response.data["field"], "status")

    def test_invalid_as_of_is_400(self):
        response = self.client.get("/api/patients/", {"as_of": "10/02/2024"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["field"], "as_of")

    def test_search(self):
        response = self.client.get("/api/patients/", {"search": "Mwamba"})
        self.assertEqual([row["id"] for row in response.data["results"]], [self.overdue.id])

    def test_create_patient(self):
        response = self.client.post(
            "/api/patients/",
            {"first_name": "Dina", "last_name": "Kasongo", "phone": "0812345670"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["patient_code"].startswith("PT-"))
        self.assertEqual(response.data["status"], "no_visit")
        self.assertEqual(response.data["reminder_status"], "No reminders sent yet")

        patient = Patient.objects.get(pk=response.data["id"])
        self.assertEqual(patient.created_by, self.user)

    def test_reminder_bookkeeping_is_read_only(self):
        response = self.client.patch(
            f"/api/patients/{self.overdue.id}/",
            {"reminder_count": 9, "last_visit_date": "2024-02-09", "next_scheduled_visit": "2024-12-31"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.overdue.refresh_from_db()
        self.assertEqual(self.overdue.reminder_count, 0)
        self.assertEqual(self.overdue.last_visit_date, date(2024, 1, 1))
        self.assertIsNone(self.overdue.next_scheduled_visit)

        state = self.client.get(f"/api/patients/{self.overdue.id}/", {"as_of": "2024-02-10"})
        self.assertEqual(state.data["status"], "overdue")

    def test_other_clinicians_patient_is_404(self):
        response = self.client.get(f"/api/patients/{self.foreign.id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_follow_up_endpoint(self):
        response = self.client.get(f"/api/patients/{self.overdue.id}/follow-up/", {"as_of": "2024-02-10"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["patient"], self.overdue.id)
        self.assertEqual(response.data["status"], "overdue")
        self.assertEqual(response.data["days_overdue"], 5)
        self.assertIsNone(response.data["days_until_due"])

    def test_dashboard(self):
        response = self.client.get("/api/patients/dashboard/", {"as_of": "2024-02-10"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total"], 2)
        self.assertEqual(response.data["overdue"], 1)
        self.assertEqual(response.data["on_track"], 1)
        self.assertEqual(response.data["due_soon"], 0)
        self.assertEqual(response.data["no_visit"], 0)

    def test_delete_archives(self):
        response = self.client.delete(f"/api/patients/{self.on_track.id}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.on_track.refresh_from_db()
        self.assertFalse(self.on_track.is_active)

        listed = self.client.get("/api/patients/")
        self.assertNotIn(self.on_track.id, [row["id"] for row in listed.data["results"]])
        archived = self.client.get("/api/patients/", {"archived": "true"})
        self.assertEqual([row["id"] for row in archived.data["results"]], [self.on_track.id])

    def test_archive_and_restore(self):
        url = f"/api/patients/{self.on_track.id}"
        self.assertEqual(self.client.post(f"{url}/archive/").status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.post(f"{url}/archive/").status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.post(f"{url}/restore/").status_code, status.HTTP_200_OK)
        self.on_track.refresh_from_db()
        self.assertTrue(self.on_track.is_active)

    def test_cannot_archive_other_clinicians_patient(self):
        response = self.client.post(f"/api/patients/{self.foreign.id}/archive/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
