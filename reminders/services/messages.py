from django.conf import settings

from patients.followup import FollowUpStatus


def format_date_long(value):
    """Format a date as '5 February 2024'."""
    return f"{value.day} {value:%B %Y}"


def build_reminder_message(patient, follow_up, clinic_name=None):
    """
    Build the follow-up reminder text for a patient.

    ``follow_up`` is the ``FollowUpState`` computed at send time; the wording
    depends on whether the visit is already late or coming up.
    """
    clinic_name = clinic_name or settings.CLINIC_NAME
    name = patient.full_name or "Patient"

    if follow_up.status == FollowUpStatus.OVERDUE:
        when = f"was due on {format_date_long(follow_up.due_date)}"
    elif follow_up.due_date:
        when = f"is due on {format_date_long(follow_up.due_date)}"
    else:
        when = "is due"

    return (
        f"Hello {name}, this is a reminder from {clinic_name}: "
        f"your follow-up visit {when}. "
        f"Please contact us to book your appointment."
    )
