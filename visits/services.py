import logging

from django.db import transaction
from django.utils import timezone

from patients.models import Patient
from .models import Visit

logger = logging.getLogger(__name__)


@transaction.atomic
def create_visit(
    patient,
    created_by,
    visit_date=None,
    next_visit_date=None,
    diagnosis="",
    notes="",
    visit_type="CONSULTATION",
):
    """
    Record a visit and restart the patient's follow-up cycle.

    The patient's follow-up summary is overwritten from this visit (even when
    it is backdated) and the reminder bookkeeping is reset. The patient row is
    locked for the duration so the reset cannot interleave with a reminder
    being recorded.
    """
    locked = Patient.objects.select_for_update().get(pk=patient.pk)
    visit_date = visit_date or timezone.localdate()

    visit = Visit.objects.create(
        patient=locked,
        created_by=created_by,
        visit_date=visit_date,
        visit_type=visit_type,
        next_visit_date=next_visit_date,
        diagnosis=diagnosis or "",
        notes=notes or "",
    )

    locked.last_visit_date = visit_date
    locked.next_scheduled_visit = next_visit_date
    locked.reminder_count = 0
    locked.last_reminder_sent = None
    locked.save(update_fields=[
        "last_visit_date",
        "next_scheduled_visit",
        "reminder_count",
        "last_reminder_sent",
        "updated_at",
    ])

    logger.info(
        "Visit #%s recorded for patient #%s on %s; follow-up cycle reset",
        visit.id, locked.pk, visit_date,
    )
    return visit
