from django.conf import settings
from django.db import models

from config.exceptions import StateConflictError


class Reminder(models.Model):
    """
    One reminder attempt for a patient.

    Created PENDING by the ledger, then moved to exactly one terminal state:
    SENT (sent_at set) or FAILED (failure_reason set). Terminal rows are
    never modified again.
    """

    CHANNEL_SMS = "sms"
    CHANNEL_WHATSAPP = "whatsapp"
    CHANNEL_CHOICES = (
        (CHANNEL_SMS, "SMS"),
        (CHANNEL_WHATSAPP, "WhatsApp"),
    )

    STATUS_PENDING = "pending"
    STATUS_SENT = "sent"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = (
        (STATUS_PENDING, "Pending"),
        (STATUS_SENT, "Sent"),
        (STATUS_FAILED, "Failed"),
    )
    TERMINAL_STATUSES = (STATUS_SENT, STATUS_FAILED)

    patient = models.ForeignKey(
        "patients.Patient",
        on_delete=models.CASCADE,
        related_name="reminders",
    )

    # Visit the reminder follows up on (latest visit at send time)
    visit = models.ForeignKey(
        "visits.Visit",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reminders",
    )

    sent_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_reminders",
    )

    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES)
    scheduled_for = models.DateTimeField()
    sent_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    failure_reason = models.TextField(null=True, blank=True)
    recipient_phone = models.CharField(
        max_length=30, null=True, blank=True,
        help_text="Phone number the message was sent to",
    )

    # Rendered text, kept for auditability
    message = models.TextField(blank=True, default="")
    provider = models.CharField(max_length=30, blank=True, default="")
    provider_message_id = models.CharField(
        max_length=100, blank=True, default="",
        help_text="Provider message ID for delivery tracking",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["patient", "status"], name="reminder_patient_status_idx"),
            models.Index(fields=["scheduled_for"], name="reminder_scheduled_for_idx"),
        ]

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def _ensure_pending(self):
        if self.is_terminal:
            raise StateConflictError(
                f"Reminder #{self.pk} is already {self.status} and cannot change.",
                code="reminder_terminal",
            )

    def mark_sent(self, sent_at, provider="", provider_message_id=""):
        self._ensure_pending()
        self.status = self.STATUS_SENT
        self.sent_at = sent_at
        self.provider = provider or ""
        self.provider_message_id = provider_message_id or ""
        self.save(update_fields=["status", "sent_at", "provider", "provider_message_id", "updated_at"])

    def mark_failed(self, reason, provider=""):
        self._ensure_pending()
        self.status = self.STATUS_FAILED
        self.failure_reason = reason or "Unknown delivery error"
        self.provider = provider or ""
        self.save(update_fields=["status", "failure_reason", "provider", "updated_at"])

    def __str__(self):
        return f"Reminder #{self.id} {self.channel} {self.status} - {self.patient}"
