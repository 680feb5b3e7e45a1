from rest_framework import serializers

from .exceptions import DeliveryError
from .models import Reminder
from .services.whatsapp import build_whatsapp_url


class ReminderSerializer(serializers.ModelSerializer):
    patient_name = serializers.SerializerMethodField()
    whatsapp_url = serializers.SerializerMethodField()

    class Meta:
        model = Reminder
        fields = [
            "id",
            "patient",
            "patient_name",
            "visit",
            "sent_by",
            "channel",
            "status",
            "scheduled_for",
            "sent_at",
            "failure_reason",
            "recipient_phone",
            "message",
            "provider",
            "provider_message_id",
            "whatsapp_url",
            "created_at",
        ]
        read_only_fields = fields

    def get_patient_name(self, obj):
        p = getattr(obj, "patient", None)
        if not p:
            return None
        return p.full_name or None

    def get_whatsapp_url(self, obj):
        """Click-to-chat link for WhatsApp reminders, rebuilt from the stored message."""
        if obj.channel != Reminder.CHANNEL_WHATSAPP or obj.status != Reminder.STATUS_SENT:
            return None
        try:
            return build_whatsapp_url(obj.recipient_phone, obj.message)
        except DeliveryError:
            return None


class SendReminderSerializer(serializers.Serializer):
    patient = serializers.IntegerField(min_value=1)
    channel = serializers.ChoiceField(choices=Reminder.CHANNEL_CHOICES)
    recipient_phone = serializers.CharField(
        max_length=30, required=False, allow_blank=True, allow_null=True,
    )
    visit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
