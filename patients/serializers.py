# patients/serializers.py
from rest_framework import serializers

from config import clock
from .aggregate import build_patient_state
from .followup import FollowUpConfig, FollowUpStatus
from .models import Patient


class PatientStateSerializer(serializers.Serializer):
    """Read model produced by ``patients.aggregate.build_patient_state``."""

    status = serializers.ChoiceField(choices=FollowUpStatus.CHOICES)
    due_date = serializers.DateField(allow_null=True)
    days_overdue = serializers.IntegerField(allow_null=True)
    days_until_due = serializers.IntegerField(allow_null=True)
    reminder_count = serializers.IntegerField()
    last_reminder_sent = serializers.DateTimeField(allow_null=True)
    can_send_reminder = serializers.BooleanField()
    hours_remaining = serializers.IntegerField()
    next_allowed_at = serializers.DateTimeField(allow_null=True)
    reminder_status = serializers.CharField()


class PatientSerializer(serializers.ModelSerializer):
    """
    Patient fields plus the follow-up state computed at the request's
    ``as_of`` moment (context keys ``as_of`` and ``follow_up_config``).

    Views that already computed states for a page pass them in the
    ``states`` context dict (patient id -> state) to avoid recomputing.
    """

    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Patient
        fields = [
            "id",
            "patient_code",
            "first_name",
            "last_name",
            "full_name",
            "sex",
            "date_of_birth",
            "phone",
            "email",
            "address",
            "notes",
            "last_visit_date",
            "next_scheduled_visit",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "patient_code",
            "full_name",
            "last_visit_date",
            "next_scheduled_visit",
            "is_active",
            "created_at",
            "updated_at",
        ]

    def validate_first_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("First name is required.")
        return value

    def _state_for(self, instance):
        states = self.context.get("states") or {}
        if instance.pk in states:
            return states[instance.pk]
        as_of = self.context.get("as_of") or clock.now()
        config = self.context.get("follow_up_config") or FollowUpConfig.from_settings()
        return build_patient_state(instance, as_of, config)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data.update(PatientStateSerializer(self._state_for(instance)).data)
        return data


class PatientFollowUpSerializer(PatientStateSerializer):
    """Per-patient follow-up record returned by /api/patients/<id>/follow-up/."""

    patient = serializers.IntegerField(source="patient_id")
    patient_code = serializers.CharField()
    full_name = serializers.CharField()
    phone = serializers.CharField(allow_blank=True)
    as_of = serializers.DateTimeField()
