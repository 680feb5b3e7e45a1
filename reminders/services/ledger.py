"""
Reminder ledger: the only code path allowed to touch a patient's reminder
bookkeeping (``reminder_count`` / ``last_reminder_sent``).

Sending a reminder happens in two committed steps:

1. Bookkeeping transaction. The patient row is locked (``SELECT ... FOR
   UPDATE``), eligibility is checked again against the locked values, a
   PENDING Reminder is inserted and the counters are bumped with a
   compare-and-swap UPDATE. Any failure rolls all of it back.
2. Delivery. The message goes out through the delivery dispatcher and the
   Reminder is moved to SENT or FAILED. A failed delivery keeps the counter
   increment: rate limiting counts attempts, not successful deliveries.

Eligibility is also checked once before step 1, without a lock, so the common
"too early" case is answered without touching the write path.

Step 1 is a durable atomic block: calling ``record_send`` inside an outer
transaction raises ``RuntimeError``, since delivery must only start once the
bookkeeping is committed.
"""

import logging

from django.conf import settings
from django.db import OperationalError, connection, transaction
from django.db.models import F

from config import clock
from config.exceptions import ValidationError
from patients.followup import FollowUpConfig, classify
from patients.models import Patient
from reminders.eligibility import can_send
from reminders.exceptions import (
    NoDueFollowUp,
    NotEligibleYet,
    PatientInactive,
    PatientNotFound,
    TransactionConflict,
    VisitNotFound,
)
from reminders.models import Reminder
from reminders.services import delivery
from reminders.services.messages import build_reminder_message
from reminders.services.sms import mask_phone
from visits.models import Visit

logger = logging.getLogger(__name__)


def _parse_id(value, field):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id.", field=field) from None
    if parsed < 1:
        raise ValidationError(f"{field} must be a positive id.", field=field)
    return parsed


def _patients_for(clinician):
    qs = Patient.objects.all()
    if clinician is not None:
        qs = qs.filter(created_by=clinician)
    return qs


def _load_patient(queryset, patient_id):
    try:
        patient = queryset.get(pk=patient_id)
    except Patient.DoesNotExist:
        raise PatientNotFound() from None
    if not patient.is_active:
        raise PatientInactive()
    return patient


def _resolve_visit(patient, visit_id):
    """The requested visit (must belong to the patient), else the latest one."""
    visits = Visit.objects.filter(patient=patient)
    if visit_id is None:
        return visits.order_by("-visit_date", "-created_at").first()
    try:
        return visits.get(pk=visit_id)
    except Visit.DoesNotExist:
        raise VisitNotFound() from None


def _apply_lock_timeout():
    # SQLite has no row locks; the compare-and-swap below covers it
    if connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute(
            "SELECT set_config('lock_timeout', %s, true)",
            [f"{settings.REMINDER_LOCK_TIMEOUT_MS}ms"],
        )


def check_sendable(patient, now, config):
    """
    Raise unless ``patient`` may receive a reminder at ``now``.

    Returns the ``FollowUpState`` the reminder message is built from.
    """
    eligibility = can_send(patient.last_reminder_sent, now, config.cooldown_hours)
    if not eligibility.eligible:
        raise NotEligibleYet(eligibility.hours_remaining, eligibility.next_allowed_at)

    follow_up = classify(patient, now, config)
    if not follow_up.is_remindable:
        raise NoDueFollowUp(follow_up.status)
    return follow_up


def record_send(
    patient_id,
    channel,
    recipient_phone=None,
    visit_id=None,
    *,
    clinician=None,
    now=None,
    config=None,
):
    """
    Record and deliver one reminder for a patient.

    Returns the Reminder, already SENT or FAILED. A failed delivery is not an
    error for the caller: the reminder exists and the cooldown has started.
    """
    patient_id = _parse_id(patient_id, "patient_id")
    visit_id = None if visit_id in (None, "") else _parse_id(visit_id, "visit_id")
    if channel not in dict(Reminder.CHANNEL_CHOICES):
        raise ValidationError(
            f"Unsupported channel '{channel}'. Use one of: sms, whatsapp.",
            field="channel",
        )

    config = config or FollowUpConfig.from_settings()
    now = now or clock.now()
    patients = _patients_for(clinician)

    # Optimistic check (no lock)
    patient = _load_patient(patients, patient_id)
    phone = (recipient_phone or "").strip() or (patient.phone or "").strip()
    if not phone:
        raise ValidationError("A recipient phone number is required.", field="recipient_phone")
    check_sendable(patient, now, config)

    try:
        with transaction.atomic(durable=True):
            _apply_lock_timeout()
            locked = _load_patient(patients.select_for_update(), patient_id)

            # Authoritative check against the locked row
            follow_up = check_sendable(locked, now, config)

            reminder = Reminder.objects.create(
                patient=locked,
                visit=_resolve_visit(locked, visit_id),
                sent_by=clinician,
                channel=channel,
                scheduled_for=now,
                recipient_phone=phone,
                message=build_reminder_message(locked, follow_up),
            )

            updated = Patient.objects.filter(
                pk=locked.pk,
                reminder_count=locked.reminder_count,
                last_reminder_sent=locked.last_reminder_sent,
            ).update(
                reminder_count=F("reminder_count") + 1,
                last_reminder_sent=now,
            )
            if updated != 1:
                logger.warning(
                    "Reminder bookkeeping changed underneath patient #%s; aborting send",
                    patient_id,
                )
                raise TransactionConflict()
    except OperationalError as exc:
        logger.error("Could not lock patient #%s for reminder: %s", patient_id, exc)
        raise TransactionConflict() from exc

    logger.info(
        "Reminder #%s recorded for patient #%s via %s to %s (count=%d)",
        reminder.id, patient_id, channel, mask_phone(phone), locked.reminder_count + 1,
    )

    result = delivery.send(channel, phone, reminder.message)
    record_delivery(reminder, result, now)
    return reminder


def record_delivery(reminder, result, sent_at=None):
    """Move a PENDING reminder to its terminal state from a delivery result."""
    with transaction.atomic():
        if result.get("ok"):
            reminder.mark_sent(
                sent_at=sent_at or clock.now(),
                provider=result.get("provider") or "",
                provider_message_id=result.get("message_id") or "",
            )
        else:
            logger.warning(
                "Reminder #%s delivery failed (%s): %s",
                reminder.id, reminder.channel, result.get("error"),
            )
            reminder.mark_failed(result.get("error"), provider=result.get("provider") or "")
    return reminder
