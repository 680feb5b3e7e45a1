"""
Tests for the reminder system.

Covers:
- Cooldown eligibility (boundaries, future timestamps) and status wording
- Phone normalisation / masking, SMS provider calls (HTTP mocked)
- WhatsApp click-to-chat links and the delivery dispatcher
- Reminder lifecycle (pending -> sent | failed, terminal immutability)
- Ledger: at most one send per cooldown window, refusals write nothing,
  failed delivery still consumes the slot, stale-lock compare-and-swap,
  lock timeout, reset by a new visit, concurrent senders
- Reminders API and management commands
"""

import threading
from datetime import date, datetime, timedelta
from io import StringIO
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse
from zoneinfo import ZoneInfo

import requests as http_requests
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import OperationalError, connection, transaction
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from config.exceptions import (
    ConcurrencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from patients.followup import FollowUpConfig, FollowUpState, FollowUpStatus
from patients.models import Patient
from reminders.eligibility import can_send, describe_reminder_status
from reminders.exceptions import (
    DeliveryError,
    NoDueFollowUp,
    NotEligibleYet,
    PatientInactive,
    PatientNotFound,
    TransactionConflict,
    VisitNotFound,
)
from reminders.models import Reminder
from reminders.services import delivery
from reminders.services.ledger import record_delivery, record_send
from reminders.services.messages import build_reminder_message, format_date_long
from reminders.services.sms import mask_phone, normalize_phone, send_sms
from reminders.services.whatsapp import build_whatsapp_url, send_whatsapp
from reminders.views import send_reminder
from visits.services import create_visit

User = get_user_model()

CLINIC_TZ = ZoneInfo("Africa/Kinshasa")
CONFIG = FollowUpConfig(interval_days=35, due_soon_days=7, cooldown_hours=24)
NOW = datetime(2024, 2, 10, 10, 0, tzinfo=CLINIC_TZ)

SMS_OK = {
    "ok": True,
    "provider": "africastalking",
    "message_id": "ATXid_123",
    "error": None,
    "phone_normalised": "+243812345678",
}
SMS_FAILED = {
    "ok": False,
    "provider": "africastalking",
    "message_id": None,
    "error": "Insufficient balance",
    "phone_normalised": "+243812345678",
}


def at_response(status_code=200, recipients=None):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = {
        "SMSMessageData": {"Recipients": recipients if recipients is not None else []}
    }
    return mock_response


# =========================================================================
# Cooldown eligibility
# =========================================================================
class CanSendTest(SimpleTestCase):

    def test_never_sent_is_eligible(self):
        result = can_send(None, NOW)
        self.assertTrue(result.eligible)
        self.assertEqual(result.hours_remaining, 0)
        self.assertIsNone(result.next_allowed_at)

    def test_23_hours_ago_is_not_eligible(self):
        last = NOW - timedelta(hours=23)
        result = can_send(last, NOW)
        self.assertFalse(result.eligible)
        self.assertEqual(result.hours_remaining, 1)
        self.assertEqual(result.next_allowed_at, last + timedelta(hours=24))

    def test_exactly_24_hours_ago_is_eligible(self):
        self.assertTrue(can_send(NOW - timedelta(hours=24), NOW).eligible)

    def test_partial_hours_are_floored(self):
        result = can_send(NOW - timedelta(hours=23, minutes=59), NOW)
        self.assertFalse(result.eligible)
        self.assertEqual(result.hours_remaining, 1)

    def test_future_timestamp_counts_as_zero_elapsed(self):
        result = can_send(NOW + timedelta(hours=2), NOW)
        self.assertFalse(result.eligible)
        self.assertEqual(result.hours_remaining, 24)

    def test_custom_cooldown(self):
        self.assertFalse(can_send(NOW - timedelta(hours=47), NOW, cooldown_hours=48).eligible)
        self.assertTrue(can_send(NOW - timedelta(hours=48), NOW, cooldown_hours=48).eligible)

    def test_zero_cooldown_always_eligible(self):
        self.assertTrue(can_send(NOW, NOW, cooldown_hours=0).eligible)


class DescribeReminderStatusTest(SimpleTestCase):

    def test_no_reminders(self):
        self.assertEqual(describe_reminder_status(0, None, NOW), "No reminders sent yet")

    def test_recent_reminder_with_wait_prompt(self):
        text = describe_reminder_status(1, NOW - timedelta(hours=3), NOW)
        self.assertEqual(
            text,
            "1 reminder sent, last one 3 hours ago. Next reminder available in 21 hours.",
        )

    def test_less_than_an_hour(self):
        text = describe_reminder_status(2, NOW - timedelta(minutes=10), NOW)
        self.assertTrue(text.startswith("2 reminders sent, last one less than an hour ago"))
        self.assertIn("24 hours", text)

    def test_singular_hour_remaining(self):
        text = describe_reminder_status(1, NOW - timedelta(hours=23), NOW)
        self.assertTrue(text.endswith("Next reminder available in 1 hour."))

    def test_days_ago_without_wait_prompt(self):
        text = describe_reminder_status(4, NOW - timedelta(days=2, hours=5), NOW)
        self.assertEqual(text, "4 reminders sent, last one 2 days ago")

    def test_one_day_ago(self):
        text = describe_reminder_status(1, NOW - timedelta(hours=25), NOW)
        self.assertEqual(text, "1 reminder sent, last one 1 day ago")


# =========================================================================
# Phone helpers
# =========================================================================
class NormalizePhoneTest(SimpleTestCase):
    """Normalisation to E.164 with the default country code (+243)."""

    def test_local_with_leading_zero(self):
        self.assertEqual(normalize_phone("0812345678"), "+243812345678")

    def test_local_without_leading_zero(self):
        self.assertEqual(normalize_phone("812345678"), "+243812345678")

    def test_already_e164(self):
        self.assertEqual(normalize_phone("+243812345678"), "+243812345678")

    def test_with_country_code_no_plus(self):
        self.assertEqual(normalize_phone("243812345678"), "+243812345678")

    def test_international_prefix(self):
        self.assertEqual(normalize_phone("00243812345678"), "+243812345678")

    def test_with_spaces_and_dashes(self):
        self.assertEqual(normalize_phone("+243 81-234-5678"), "+243812345678")

    def test_other_country_code(self):
        self.assertEqual(normalize_phone("0712345678", country_code="+254"), "+254712345678")

    def test_empty_and_none(self):
        self.assertIsNone(normalize_phone(""))
        self.assertIsNone(normalize_phone(None))

    def test_too_short(self):
        self.assertIsNone(normalize_phone("123"))

    def test_garbage_input(self):
        self.assertIsNone(normalize_phone("abcdefg"))


class MaskPhoneTest(SimpleTestCase):

    def test_standard_mask(self):
        masked = mask_phone("+243812345678")
        self.assertNotIn("812345678", masked)
        self.assertTrue(masked.startswith("+2438"))
        self.assertTrue(masked.endswith("678"))

    def test_short_number_fully_masked(self):
        self.assertEqual(mask_phone("12345"), "***")

    def test_empty(self):
        self.assertEqual(mask_phone(""), "***")
        self.assertEqual(mask_phone(None), "***")


# =========================================================================
# SMS provider
# =========================================================================
class SendSmsInvalidPhoneTest(SimpleTestCase):
    """send_sms returns ok=False without calling the provider for bad numbers."""

    @patch("reminders.services.sms.http_requests.post")
    def test_invalid_phone_returns_error(self, mock_post):
        result = send_sms("invalid", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("Invalid", result["error"])
        self.assertIsNone(result["message_id"])
        self.assertEqual(result["provider"], "africastalking")
        mock_post.assert_not_called()

    @override_settings(AFRICASTALKING_USERNAME="", AFRICASTALKING_API_KEY="")
    @patch("reminders.services.sms.http_requests.post")
    def test_missing_credentials(self, mock_post):
        result = send_sms("+243812345678", "Hello")
        self.assertFalse(result["ok"])
        self.assertEqual(result["error"], "SMS provider not configured")
        mock_post.assert_not_called()


@override_settings(
    AFRICASTALKING_USERNAME="sandbox",
    AFRICASTALKING_API_KEY="test_api_key",
    AFRICASTALKING_SENDER_ID="",
    SMS_HTTP_TIMEOUT=30,
)
class SendSmsTest(SimpleTestCase):

    @patch("reminders.services.sms.http_requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = at_response(
            recipients=[{"status": "Success", "messageId": "ATXid_ok"}]
        )

        result = send_sms("0812345678", "Rappel de suivi pédiatrique")

        self.assertTrue(result["ok"])
        self.assertEqual(result["message_id"], "ATXid_ok")
        self.assertEqual(result["phone_normalised"], "+243812345678")

        call_kwargs = mock_post.call_args.kwargs
        self.assertIn("sandbox", mock_post.call_args.args[0])
        self.assertEqual(call_kwargs["data"]["to"], "+243812345678")
        self.assertEqual(call_kwargs["data"]["message"], "Rappel de suivi pédiatrique")
        self.assertNotIn("from", call_kwargs["data"])
        self.assertIn("charset=UTF-8", call_kwargs["headers"]["Content-Type"])
        self.assertEqual(call_kwargs["timeout"], 30)

    @override_settings(AFRICASTALKING_USERNAME="clinic", AFRICASTALKING_SENDER_ID="CLINIC")
    @patch("reminders.services.sms.http_requests.post")
    def test_live_endpoint_and_sender_id(self, mock_post):
        mock_post.return_value = at_response(
            recipients=[{"status": "Success", "messageId": "ATXid_live"}]
        )

        send_sms("+243812345678", "Hello")

        self.assertEqual(
            mock_post.call_args.args[0],
            "https://api.africastalking.com/version1/messaging",
        )
        self.assertEqual(mock_post.call_args.kwargs["data"]["from"], "CLINIC")

    @patch("reminders.services.sms.http_requests.post")
    def test_provider_rejects_recipient(self, mock_post):
        mock_post.return_value = at_response(recipients=[{"status": "InsufficientBalance"}])
        result = send_sms("+243812345678", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("InsufficientBalance", result["error"])

    @patch("reminders.services.sms.http_requests.post")
    def test_empty_recipients(self, mock_post):
        mock_post.return_value = at_response(recipients=[])
        result = send_sms("+243812345678", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("No recipients", result["error"])

    @patch("reminders.services.sms.http_requests.post")
    def test_non_json_response_handled_gracefully(self, mock_post):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.side_effect = ValueError("No JSON")
        mock_response.text = "<html>Gateway Error</html>"
        mock_post.return_value = mock_response

        result = send_sms("+243812345678", "Hello")

        self.assertFalse(result["ok"])
        self.assertIn("Invalid JSON", result["error"])

    @patch("reminders.services.sms.http_requests.post")
    def test_http_error_status_handled(self, mock_post):
        mock_response = MagicMock()
        mock_response.status_code = 500
        mock_response.text = "Internal Server Error"
        mock_post.return_value = mock_response

        result = send_sms("+243812345678", "Hello")

        self.assertFalse(result["ok"])
        self.assertIn("HTTP 500", result["error"])

    @patch("reminders.services.sms.http_requests.post")
    def test_timeout_is_captured(self, mock_post):
        mock_post.side_effect = http_requests.Timeout("read timed out")
        result = send_sms("+243812345678", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("timed out", result["error"])


# =========================================================================
# WhatsApp links and dispatcher
# =========================================================================
class WhatsAppTest(SimpleTestCase):

    def test_build_url_encodes_message(self):
        url = build_whatsapp_url("0812345678", "Bonjour Élodie, rendez-vous & suivi")
        parsed = urlparse(url)
        self.assertEqual(parsed.netloc, "wa.me")
        self.assertEqual(parsed.path, "/243812345678")
        self.assertEqual(parse_qs(parsed.query)["text"][0], "Bonjour Élodie, rendez-vous & suivi")

    def test_invalid_phone_raises(self):
        with self.assertRaises(DeliveryError):
            build_whatsapp_url("12", "Hello")

    def test_send_returns_link(self):
        result = send_whatsapp("+243812345678", "Hello")
        self.assertTrue(result["ok"])
        self.assertEqual(result["provider"], "whatsapp_link")
        self.assertEqual(result["url"], "https://wa.me/243812345678?text=Hello")


class DeliveryDispatchTest(SimpleTestCase):

    def test_unknown_channel(self):
        result = delivery.send("pigeon", "+243812345678", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("Unsupported channel", result["error"])

    def test_channel_error_becomes_failure(self):
        result = delivery.send("whatsapp", "12", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("Invalid phone number", result["error"])

    def test_unexpected_exception_becomes_failure(self):
        broken = MagicMock(side_effect=RuntimeError("provider SDK exploded"))
        with patch.dict(delivery.CHANNELS, {"sms": broken}):
            result = delivery.send("sms", "+243812345678", "Hello")
        self.assertFalse(result["ok"])
        self.assertIn("exploded", result["error"])


# =========================================================================
# Message text
# =========================================================================
@override_settings(CLINIC_NAME="Clinique Sainte Anne")
class BuildReminderMessageTest(SimpleTestCase):

    def setUp(self):
        self.patient = Patient(first_name="Marie", last_name="Kabila")

    def test_format_date_long(self):
        self.assertEqual(format_date_long(date(2024, 2, 5)), "5 February 2024")

    def test_overdue_wording(self):
        state = FollowUpState(FollowUpStatus.OVERDUE, date(2024, 2, 5), days_overdue=5)
        message = build_reminder_message(self.patient, state)
        self.assertEqual(
            message,
            "Hello Marie Kabila, this is a reminder from Clinique Sainte Anne: "
            "your follow-up visit was due on 5 February 2024. "
            "Please contact us to book your appointment.",
        )

    def test_due_soon_wording(self):
        state = FollowUpState(FollowUpStatus.DUE_SOON, date(2024, 2, 12), days_until_due=2)
        message = build_reminder_message(self.patient, state, clinic_name="CSA")
        self.assertIn("from CSA", message)
        self.assertIn("is due on 12 February 2024", message)


# =========================================================================
# Reminder lifecycle
# =========================================================================
class ReminderModelTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_lifecycle", password="testpass123")
        cls.patient = Patient.objects.create(first_name="Alice", created_by=cls.user)

    def _reminder(self):
        return Reminder.objects.create(
            patient=self.patient,
            channel=Reminder.CHANNEL_SMS,
            scheduled_for=NOW,
            recipient_phone="+243812345678",
        )

    def test_created_pending(self):
        reminder = self._reminder()
        self.assertEqual(reminder.status, Reminder.STATUS_PENDING)
        self.assertFalse(reminder.is_terminal)

    def test_mark_sent(self):
        reminder = self._reminder()
        reminder.mark_sent(NOW, provider="africastalking", provider_message_id="ATXid_1")
        reminder.refresh_from_db()
        self.assertEqual(reminder.status, Reminder.STATUS_SENT)
        self.assertEqual(reminder.sent_at, NOW)
        self.assertIsNone(reminder.failure_reason)

    def test_mark_failed(self):
        reminder = self._reminder()
        reminder.mark_failed("Insufficient balance")
        reminder.refresh_from_db()
        self.assertEqual(reminder.status, Reminder.STATUS_FAILED)
        self.assertIsNone(reminder.sent_at)
        self.assertEqual(reminder.failure_reason, "Insufficient balance")

    def test_terminal_reminder_cannot_change(self):
        reminder = self._reminder()
        reminder.mark_sent(NOW)
        with self.assertRaises(StateConflictError):
            reminder.mark_failed("late failure")
        with self.assertRaises(StateConflictError):
            record_delivery(reminder, SMS_OK, NOW)

        reminder.refresh_from_db()
        self.assertEqual(reminder.status, Reminder.STATUS_SENT)
        self.assertIsNone(reminder.failure_reason)


# =========================================================================
# Ledger
# =========================================================================
@patch("reminders.services.delivery.send", return_value=SMS_OK)
class RecordSendTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_ledger", password="testpass123")
        cls.other = User.objects.create_user(username="doc_ledger_other", password="testpass123")

    def setUp(self):
        # due 2024-02-05, overdue by 5 days at NOW
        self.patient = Patient.objects.create(
            first_name="Alice",
            last_name="Mwamba",
            phone="+243812345678",
            created_by=self.user,
        )
        self.visit = create_visit(self.patient, self.user, visit_date=date(2024, 1, 1))
        self.patient.refresh_from_db()

    def send(self, **kwargs):
        kwargs.setdefault("now", NOW)
        kwargs.setdefault("config", CONFIG)
        kwargs.setdefault("clinician", self.user)
        return record_send(
            kwargs.pop("patient_id", self.patient.id),
            kwargs.pop("channel", Reminder.CHANNEL_SMS),
            **kwargs,
        )

    def test_successful_send(self, mock_send):
        reminder = self.send()

        self.assertEqual(reminder.status, Reminder.STATUS_SENT)
        self.assertEqual(reminder.sent_at, NOW)
        self.assertEqual(reminder.scheduled_for, NOW)
        self.assertEqual(reminder.provider_message_id, "ATXid_123")
        self.assertEqual(reminder.visit, self.visit)
        self.assertEqual(reminder.sent_by, self.user)
        self.assertEqual(reminder.recipient_phone, "+243812345678")
        self.assertIn("was due on 5 February 2024", reminder.message)
        mock_send.assert_called_once_with("sms", "+243812345678", reminder.message)

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 1)
        self.assertEqual(self.patient.last_reminder_sent, NOW)

    def test_second_send_within_cooldown_refused(self, mock_send):
        self.send()

        with self.assertRaises(NotEligibleYet) as ctx:
            self.send(now=NOW + timedelta(hours=23))

        self.assertIsInstance(ctx.exception, StateConflictError)
        self.assertEqual(ctx.exception.hours_remaining, 1)
        self.assertEqual(ctx.exception.next_allowed_at, NOW + timedelta(hours=24))
        self.assertEqual(Reminder.objects.filter(patient=self.patient).count(), 1)
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 1)
        self.assertEqual(mock_send.call_count, 1)

    def test_send_allowed_again_after_cooldown(self, mock_send):
        self.send()
        self.send(now=NOW + timedelta(hours=24))

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 2)
        self.assertEqual(self.patient.last_reminder_sent, NOW + timedelta(hours=24))

    def test_failed_delivery_still_consumes_slot(self, mock_send):
        mock_send.return_value = SMS_FAILED

        reminder = self.send()

        self.assertEqual(reminder.status, Reminder.STATUS_FAILED)
        self.assertEqual(reminder.failure_reason, "Insufficient balance")
        self.assertIsNone(reminder.sent_at)
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 1)
        with self.assertRaises(NotEligibleYet):
            self.send(now=NOW + timedelta(hours=1))

    def test_not_due_refused(self, mock_send):
        with self.assertRaises(NoDueFollowUp) as ctx:
            self.send(now=datetime(2024, 1, 10, 9, 0, tzinfo=CLINIC_TZ))

        self.assertEqual(ctx.exception.extra["status"], FollowUpStatus.ON_TRACK)
        self.assertFalse(Reminder.objects.exists())
        mock_send.assert_not_called()

    def test_patient_without_visit_refused(self, mock_send):
        patient = Patient.objects.create(first_name="Nova", phone="0812345678", created_by=self.user)
        with self.assertRaises(NoDueFollowUp):
            self.send(patient_id=patient.id)

    def test_due_soon_can_be_reminded(self, mock_send):
        reminder = self.send(now=datetime(2024, 2, 1, 9, 0, tzinfo=CLINIC_TZ))
        self.assertIn("is due on 5 February 2024", reminder.message)

    def test_inactive_patient_is_not_found(self, mock_send):
        Patient.objects.filter(pk=self.patient.pk).update(is_active=False)

        with self.assertRaises(PatientInactive) as ctx:
            self.send()

        self.assertIsInstance(ctx.exception, NotFoundError)
        self.assertFalse(Reminder.objects.exists())

    def test_missing_patient(self, mock_send):
        with self.assertRaises(PatientNotFound):
            self.send(patient_id=999999)

    def test_other_clinicians_patient_is_not_found(self, mock_send):
        with self.assertRaises(PatientNotFound):
            self.send(clinician=self.other)

    def test_malformed_identifiers_and_channel(self, mock_send):
        with self.assertRaises(ValidationError):
            self.send(patient_id="abc")
        with self.assertRaises(ValidationError):
            self.send(patient_id=0)
        with self.assertRaises(ValidationError):
            self.send(visit_id="x")
        with self.assertRaises(ValidationError):
            self.send(channel="pigeon")
        self.assertFalse(Reminder.objects.exists())

    def test_no_phone_available(self, mock_send):
        Patient.objects.filter(pk=self.patient.pk).update(phone="")
        with self.assertRaises(ValidationError):
            self.send()

    def test_explicit_recipient_phone(self, mock_send):
        reminder = self.send(recipient_phone="0899999999")
        self.assertEqual(reminder.recipient_phone, "0899999999")
        mock_send.assert_called_once_with("sms", "0899999999", reminder.message)

    def test_explicit_visit(self, mock_send):
        other_patient = Patient.objects.create(first_name="Bob", created_by=self.user)
        other_visit = create_visit(other_patient, self.user, visit_date=date(2024, 1, 1))

        with self.assertRaises(VisitNotFound):
            self.send(visit_id=other_visit.id)
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 0)

        reminder = self.send(visit_id=self.visit.id)
        self.assertEqual(reminder.visit, self.visit)

    def test_new_visit_resets_bookkeeping(self, mock_send):
        self.send()
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 1)

        create_visit(self.patient, self.user, visit_date=date(2024, 2, 10))

        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 0)
        self.assertIsNone(self.patient.last_reminder_sent)

    def test_stale_lock_read_loses_compare_and_swap(self, mock_send):
        # A competing request read the row before the first send committed
        stale = Patient.objects.get(pk=self.patient.pk)
        self.send()

        with patch("reminders.services.ledger._load_patient", return_value=stale):
            with self.assertRaises(TransactionConflict) as ctx:
                self.send(now=NOW + timedelta(minutes=1))

        self.assertIsInstance(ctx.exception, ConcurrencyError)
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(Reminder.objects.filter(patient=self.patient).count(), 1)
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 1)
        self.assertEqual(self.patient.last_reminder_sent, NOW)
        self.assertEqual(mock_send.call_count, 1)

    def test_lock_timeout_is_a_conflict(self, mock_send):
        with patch(
            "reminders.services.ledger._apply_lock_timeout",
            side_effect=OperationalError("canceling statement due to lock timeout"),
        ):
            with self.assertRaises(TransactionConflict):
                self.send()

        self.assertFalse(Reminder.objects.exists())
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 0)
        mock_send.assert_not_called()

    def test_nested_in_outer_transaction_is_rejected(self, mock_send):
        with transaction.atomic():
            with self.assertRaises(RuntimeError):
                self.send()

        self.assertFalse(Reminder.objects.exists())
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 0)
        mock_send.assert_not_called()

    @override_settings(FOLLOW_UP_INTERVAL_DAYS=35, FOLLOW_UP_DUE_SOON_DAYS=7, REMINDER_COOLDOWN_HOURS=48)
    def test_config_from_settings_when_not_given(self, mock_send):
        record_send(self.patient.id, "sms", clinician=self.user, now=NOW)
        with self.assertRaises(NotEligibleYet) as ctx:
            record_send(self.patient.id, "sms", clinician=self.user, now=NOW + timedelta(hours=30))
        self.assertEqual(ctx.exception.hours_remaining, 18)


@patch("reminders.services.delivery.send", return_value=SMS_OK)
class ConcurrentSendTest(TransactionTestCase):
    """Several clinicians press "send" for the same patient at once."""

    workers = 4

    def setUp(self):
        self.user = User.objects.create_user(username="doc_race", password="testpass123")
        self.patient = Patient.objects.create(
            first_name="Alice",
            last_name="Mwamba",
            phone="+243812345678",
            last_visit_date=date(2024, 1, 1),
            created_by=self.user,
        )

    def test_only_one_concurrent_send_is_recorded(self, mock_send):
        barrier = threading.Barrier(self.workers)
        outcomes = []

        def attempt():
            try:
                barrier.wait()
                record_send(self.patient.id, "sms", clinician=self.user, now=NOW, config=CONFIG)
                outcomes.append("sent")
            except (TransactionConflict, NotEligibleYet) as exc:
                outcomes.append(type(exc).__name__)
            except Exception as exc:
                outcomes.append(repr(exc))
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt) for _ in range(self.workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(outcomes), self.workers)
        self.assertEqual(outcomes.count("sent"), 1, outcomes)
        self.assertTrue(
            set(outcomes) <= {"sent", "TransactionConflict", "NotEligibleYet"}, outcomes
        )
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.reminder_count, 1)
        self.assertEqual(self.patient.last_reminder_sent, NOW)
        self.assertEqual(Reminder.objects.filter(patient=self.patient).count(), 1)
        self.assertEqual(mock_send.call_count, 1)


# =========================================================================
# API
# =========================================================================
@override_settings(CLINIC_NAME="Clinique Sainte Anne")
class ReminderAPITest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_rem_api", password="testpass123")
        cls.other = User.objects.create_user(username="doc_rem_other", password="testpass123")

    def setUp(self):
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)
        self.patient = Patient.objects.create(
            first_name="Alice",
            last_name="Mwamba",
            phone="0812345678",
            last_visit_date=timezone.localdate() - timedelta(days=40),
            created_by=self.user,
        )

    def post_send(self, **payload):
        payload.setdefault("patient", self.patient.id)
        payload.setdefault("channel", "sms")
        return self.client.post("/api/reminders/send/", payload, format="json")

    def test_send_view_opts_out_of_request_transactions(self):
        self.assertIn("default", send_reminder._non_atomic_requests)

    @patch("reminders.services.delivery.send", return_value=SMS_OK)
    def test_send_returns_reminder_and_state(self, mock_send):
        response = self.post_send()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["delivered"])
        self.assertEqual(response.data["reminder"]["status"], "sent")
        self.assertEqual(response.data["reminder"]["patient"], self.patient.id)
        self.assertIsNone(response.data["reminder"]["whatsapp_url"])

        state = response.data["patient_state"]
        self.assertEqual(state["reminder_count"], 1)
        self.assertFalse(state["can_send_reminder"])
        self.assertEqual(state["hours_remaining"], 24)
        self.assertEqual(state["status"], "overdue")

    @patch("reminders.services.delivery.send", return_value=SMS_OK)
    def test_second_send_is_409_with_hours_remaining(self, mock_send):
        self.post_send()
        response = self.post_send()

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "reminder_cooldown")
        self.assertEqual(response.data["hours_remaining"], 24)
        self.assertFalse(response.data["retryable"])
        self.assertEqual(Reminder.objects.count(), 1)

    @patch("reminders.services.delivery.send", return_value=SMS_FAILED)
    def test_failed_delivery_is_still_201(self, mock_send):
        response = self.post_send()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data["delivered"])
        self.assertEqual(response.data["reminder"]["status"], "failed")
        self.assertEqual(response.data["reminder"]["failure_reason"], "Insufficient balance")
        self.assertEqual(response.data["patient_state"]["reminder_count"], 1)

    def test_whatsapp_send_returns_link(self):
        response = self.post_send(channel="whatsapp")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        reminder = response.data["reminder"]
        self.assertEqual(reminder["status"], "sent")
        self.assertEqual(reminder["provider"], "whatsapp_link")
        self.assertTrue(reminder["whatsapp_url"].startswith("https://wa.me/243812345678?text="))
        text = parse_qs(urlparse(reminder["whatsapp_url"]).query)["text"][0]
        self.assertEqual(text, reminder["message"])
        self.assertIn("Clinique Sainte Anne", text)

    def test_not_due_is_409(self):
        Patient.objects.filter(pk=self.patient.pk).update(last_visit_date=timezone.localdate())
        response = self.post_send()
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "no_due_follow_up")
        self.assertEqual(response.data["status"], "on_track")

    def test_archived_patient_is_404(self):
        Patient.objects.filter(pk=self.patient.pk).update(is_active=False)
        response = self.post_send()
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "patient_inactive")

    def test_other_clinicians_patient_is_404(self):
        foreign = Patient.objects.create(
            first_name="Carl", phone="0812345670",
            last_visit_date=timezone.localdate() - timedelta(days=40),
            created_by=self.other,
        )
        response = self.post_send(patient=foreign.id)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "patient_not_found")

    def test_invalid_payload_is_400(self):
        response = self.client.post("/api/reminders/send/", {"patient": self.patient.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("channel", response.data)

        response = self.post_send(channel="pigeon")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @patch("reminders.views.record_send", side_effect=TransactionConflict())
    def test_concurrency_conflict_is_retryable_409(self, mock_record):
        response = self.post_send()
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "transaction_conflict")
        self.assertTrue(response.data["retryable"])

    @patch("reminders.services.delivery.send", return_value=SMS_OK)
    def test_list_and_detail(self, mock_send):
        sent = self.post_send().data["reminder"]

        response = self.client.get("/api/reminders/", {"patient": self.patient.id, "status": "sent"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data["results"]], [sent["id"]])

        response = self.client.get("/api/reminders/", {"status": "failed"})
        self.assertEqual(response.data["count"], 0)

        response = self.client.get(f"/api/reminders/{sent['id']}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["patient_name"], "Alice Mwamba")

    @patch("reminders.services.delivery.send", return_value=SMS_OK)
    def test_reminders_of_other_clinicians_hidden(self, mock_send):
        reminder_id = self.post_send().data["reminder"]["id"]

        client = APIClient()
        client.force_authenticate(user=self.other)
        self.assertEqual(client.get("/api/reminders/").data["count"], 0)
        self.assertEqual(
            client.get(f"/api/reminders/{reminder_id}/").status_code,
            status.HTTP_404_NOT_FOUND,
        )


# =========================================================================
# Management commands
# =========================================================================
class CheckDeliveryCommandTest(TestCase):

    def test_whatsapp_prints_link(self):
        out = StringIO()
        call_command("check_delivery", "0812345678", "--channel", "whatsapp", "--message", "Hi", stdout=out)
        output = out.getvalue()
        self.assertIn("Message delivered.", output)
        self.assertIn("https://wa.me/243812345678?text=Hi", output)

    @override_settings(AFRICASTALKING_USERNAME="sandbox", AFRICASTALKING_API_KEY="test_api_key")
    @patch("reminders.services.sms.http_requests.post")
    def test_sms_success(self, mock_post):
        mock_post.return_value = at_response(
            recipients=[{"status": "Success", "messageId": "ATXid_cmd"}]
        )
        out = StringIO()
        call_command("check_delivery", "+243812345678", stdout=out)
        self.assertIn("ATXid_cmd", out.getvalue())

    @override_settings(AFRICASTALKING_USERNAME="", AFRICASTALKING_API_KEY="")
    def test_failure_exits_with_status_1(self):
        out = StringIO()
        with self.assertRaises(SystemExit) as ctx:
            call_command("check_delivery", "+243812345678", stdout=out)
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("Delivery FAILED.", out.getvalue())


class FollowUpReportCommandTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username="doc_report", password="testpass123")
        cls.other = User.objects.create_user(username="doc_report_other", password="testpass123")
        cls.overdue = Patient.objects.create(
            first_name="Alice", last_name="Mwamba",
            last_visit_date=date(2024, 1, 1), created_by=cls.user,
        )
        cls.due_soon = Patient.objects.create(
            first_name="Bob", last_name="Nzuzi",
            next_scheduled_visit=date(2024, 2, 12), created_by=cls.other,
        )
        cls.on_track = Patient.objects.create(
            first_name="Carl", last_name="Tshala",
            last_visit_date=date(2024, 2, 1), created_by=cls.user,
        )

    def test_report_lists_worklist(self):
        out = StringIO()
        call_command("followup_report", "--as-of", "2024-02-10", stdout=out)
        output = out.getvalue()

        self.assertIn("3 active patient(s): 1 overdue, 1 due soon, 1 on track", output)
        self.assertIn("overdue by 5 day(s)", output)
        self.assertIn("due in 2 day(s)", output)
        self.assertNotIn("Tshala", output)
        self.assertLess(output.index("Mwamba"), output.index("Nzuzi"))

    def test_report_for_one_clinician(self):
        out = StringIO()
        call_command("followup_report", "--as-of", "2024-02-10", "--clinician", "doc_report_other", stdout=out)
        output = out.getvalue()
        self.assertIn("Nzuzi", output)
        self.assertNotIn("Mwamba", output)

    def test_nothing_to_follow_up(self):
        out = StringIO()
        call_command("followup_report", "--as-of", "2024-01-05", stdout=out)
        self.assertIn("Nothing to follow up.", out.getvalue())

    def test_invalid_arguments(self):
        with self.assertRaises(CommandError):
            call_command("followup_report", "--as-of", "yesterday", stdout=StringIO())
        with self.assertRaises(CommandError):
            call_command("followup_report", "--clinician", "nobody", stdout=StringIO())
