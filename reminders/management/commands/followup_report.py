"""
Print the follow-up worklist: overdue and due-soon patients, most overdue
first, with reminder eligibility.

Usage:
    python manage.py followup_report
    python manage.py followup_report --as-of 2024-02-10 --clinician jdoe
"""

import logging

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from config.clock import resolve_as_of
from config.exceptions import ValidationError
from patients.aggregate import ORDERING_DUE_DATE, list_patient_states, summarize
from patients.followup import FollowUpConfig, FollowUpStatus
from patients.models import Patient

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "List overdue and due-soon patients with reminder eligibility"

    def add_arguments(self, parser):
        parser.add_argument(
            "--as-of",
            dest="as_of",
            default=None,
            help="Evaluate as of this date (YYYY-MM-DD) instead of now",
        )
        parser.add_argument(
            "--clinician",
            default=None,
            help="Only patients registered by this username",
        )

    def handle(self, *args, **options):
        try:
            as_of = resolve_as_of(options["as_of"])
        except ValidationError as exc:
            raise CommandError(str(exc.detail)) from exc

        patients = Patient.objects.filter(is_active=True)
        if options["clinician"]:
            User = get_user_model()
            try:
                clinician = User.objects.get(username=options["clinician"])
            except User.DoesNotExist:
                raise CommandError(f"Unknown clinician '{options['clinician']}'") from None
            patients = patients.filter(created_by=clinician)

        items = list_patient_states(
            patients,
            as_of,
            FollowUpConfig.from_settings(),
            ordering=ORDERING_DUE_DATE,
        )
        summary = summarize(state for _, state in items)

        self.stdout.write(f"Follow-up report as of {as_of:%Y-%m-%d %H:%M %Z}")
        self.stdout.write(
            f"  {summary['total']} active patient(s): "
            f"{summary[FollowUpStatus.OVERDUE]} overdue, "
            f"{summary[FollowUpStatus.DUE_SOON]} due soon, "
            f"{summary[FollowUpStatus.ON_TRACK]} on track, "
            f"{summary[FollowUpStatus.NO_VISIT]} without visit"
        )
        self.stdout.write("")

        worklist = [(p, s) for p, s in items if s["status"] in FollowUpStatus.REMINDABLE]
        if not worklist:
            self.stdout.write(self.style.SUCCESS("Nothing to follow up."))
            return

        for patient, state in worklist:
            if state["status"] == FollowUpStatus.OVERDUE:
                when = f"overdue by {state['days_overdue']} day(s)"
            else:
                when = f"due in {state['days_until_due']} day(s)"
            reminder = "can remind" if state["can_send_reminder"] else state["reminder_status"]
            self.stdout.write(
                f"  {patient.patient_code}  {patient.full_name:<30} "
                f"due {state['due_date']:%Y-%m-%d}  {when}  [{reminder}]"
            )

        logger.info("Follow-up report: %d patient(s) to follow up", len(worklist))
