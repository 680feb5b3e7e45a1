"""
Per-patient follow-up records for list and dashboard views.

States are recomputed on every call from the stored patient fields; nothing
here is cached or written back.
"""

from collections import Counter
from datetime import date

from patients.followup import FollowUpStatus, classify
from reminders.eligibility import can_send, describe_reminder_status

ORDERING_DUE_DATE = "due_date"
ORDERING_NAME = "name"
ORDERING_NEWEST = "-created_at"
ORDERINGS = (ORDERING_DUE_DATE, ORDERING_NAME, ORDERING_NEWEST)


def build_patient_state(patient, now, config):
    follow_up = classify(patient, now, config)
    eligibility = can_send(patient.last_reminder_sent, now, config.cooldown_hours)

    return {
        "status": follow_up.status,
        "due_date": follow_up.due_date,
        "days_overdue": follow_up.days_overdue,
        "days_until_due": follow_up.days_until_due,
        "reminder_count": patient.reminder_count,
        "last_reminder_sent": patient.last_reminder_sent,
        "can_send_reminder": (
            patient.is_active and eligibility.eligible and follow_up.is_remindable
        ),
        "hours_remaining": eligibility.hours_remaining,
        "next_allowed_at": eligibility.next_allowed_at,
        "reminder_status": describe_reminder_status(
            patient.reminder_count,
            patient.last_reminder_sent,
            now,
            config.cooldown_hours,
        ),
    }


def _name_key(item):
    patient, _ = item
    return (patient.last_name.lower(), patient.first_name.lower(), patient.pk or 0)


def _due_date_key(item):
    # Undated patients (no visit yet) sort after every dated one
    _, state = item
    due_date = state["due_date"]
    return (due_date is None, due_date or date.min, _name_key(item))


def list_patient_states(patients, now, config, status=None, ordering=None):
    """
    Return ``[(patient, state), ...]`` for ``patients``.

    ``status`` keeps only patients in that follow-up status. ``ordering`` is
    one of ``ORDERINGS``; name order is the default.
    """
    if status is not None and status not in dict(FollowUpStatus.CHOICES):
        raise ValueError(f"Unknown follow-up status: {status}")
    if ordering is not None and ordering not in ORDERINGS:
        raise ValueError(f"Unknown ordering: {ordering}")

    items = [(patient, build_patient_state(patient, now, config)) for patient in patients]
    if status is not None:
        items = [item for item in items if item[1]["status"] == status]

    if ordering == ORDERING_DUE_DATE:
        items.sort(key=_due_date_key)
    elif ordering == ORDERING_NEWEST:
        items.sort(key=lambda item: item[0].created_at, reverse=True)
    else:
        items.sort(key=_name_key)
    return items


def summarize(states):
    """Dashboard counts per follow-up status."""
    counts = Counter(state["status"] for state in states)
    summary = {"total": sum(counts.values())}
    for value, _label in FollowUpStatus.CHOICES:
        summary[value] = counts.get(value, 0)
    return summary
