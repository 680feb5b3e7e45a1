import logging

from django.db import transaction
from rest_framework import generics, permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from config import clock
from patients.aggregate import build_patient_state
from patients.followup import FollowUpConfig
from patients.models import Patient
from patients.serializers import PatientStateSerializer
from .models import Reminder
from .serializers import ReminderSerializer, SendReminderSerializer
from .services.ledger import record_send

logger = logging.getLogger(__name__)


class ReminderListAPIView(generics.ListAPIView):
    serializer_class = ReminderSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        qs = (
            Reminder.objects.select_related("patient")
            .filter(patient__created_by=self.request.user)
            .order_by("-created_at")
        )

        patient_id = self.request.query_params.get("patient")
        status_ = self.request.query_params.get("status")

        if patient_id:
            qs = qs.filter(patient_id=patient_id) if patient_id.isdigit() else qs.none()

        if status_:
            qs = qs.filter(status=status_)

        return qs


class ReminderDetailAPIView(generics.RetrieveAPIView):
    serializer_class = ReminderSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return Reminder.objects.select_related("patient").filter(
            patient__created_by=self.request.user
        )


@transaction.non_atomic_requests
@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def send_reminder(request):
    """
    POST /api/reminders/send/
    {"patient": 12, "channel": "sms"|"whatsapp", "recipient_phone": "...", "visit": 34}

    201 as soon as the reminder is recorded, including when delivery failed:
    the reminder then comes back with status "failed" and the cooldown still
    applies. Refusals (cooldown running, nothing due, archived patient) are
    4xx errors and record nothing.
    """
    serializer = SendReminderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    config = FollowUpConfig.from_settings()
    now = clock.now()

    reminder = record_send(
        data["patient"],
        data["channel"],
        recipient_phone=data.get("recipient_phone"),
        visit_id=data.get("visit"),
        clinician=request.user,
        now=now,
        config=config,
    )

    patient = Patient.objects.get(pk=reminder.patient_id)
    return Response(
        {
            "reminder": ReminderSerializer(reminder).data,
            "delivered": reminder.status == Reminder.STATUS_SENT,
            "patient_state": PatientStateSerializer(
                build_patient_state(patient, now, config)
            ).data,
        },
        status=status.HTTP_201_CREATED,
    )
