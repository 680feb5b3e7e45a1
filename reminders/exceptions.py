from config.exceptions import (
    ConcurrencyError,
    NotFoundError,
    StateConflictError,
)


class PatientNotFound(NotFoundError):
    default_detail = "Patient not found or not authorized."
    default_code = "patient_not_found"


class PatientInactive(NotFoundError):
    """Archived patients are treated as absent for reminder sending."""
    default_detail = "Patient not found or not authorized."
    default_code = "patient_inactive"


class VisitNotFound(NotFoundError):
    default_detail = "Visit not found for this patient."
    default_code = "visit_not_found"


class NotEligibleYet(StateConflictError):
    default_detail = "A reminder was sent recently."
    default_code = "reminder_cooldown"

    def __init__(self, hours_remaining, next_allowed_at=None, detail=None):
        if detail is None:
            unit = "hour" if hours_remaining == 1 else "hours"
            detail = f"Please wait {hours_remaining} more {unit} before sending another reminder."
        super().__init__(
            detail,
            hours_remaining=hours_remaining,
            next_allowed_at=next_allowed_at,
        )
        self.hours_remaining = hours_remaining
        self.next_allowed_at = next_allowed_at


class NoDueFollowUp(StateConflictError):
    default_code = "no_due_follow_up"

    def __init__(self, follow_up_status, detail=None):
        if detail is None:
            detail = f"No follow-up is due for this patient (status: {follow_up_status})."
        super().__init__(detail, status=follow_up_status)
        self.follow_up_status = follow_up_status


class TransactionConflict(ConcurrencyError):
    default_code = "transaction_conflict"


class DeliveryError(Exception):
    """
    Raised by a delivery channel when a message could not be handed over.

    Never reaches the API caller: the dispatcher turns it into a failed
    delivery result and the ledger records it on the Reminder.
    """
