from django.conf import settings
from django.db import models
from django.db.models import Q


class Patient(models.Model):
    SEX_CHOICES = [
        ("M", "Male"),
        ("F", "Female"),
        ("O", "Other"),
    ]

    patient_code = models.CharField(max_length=20, unique=True, blank=True, db_index=True)

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default="")
    sex = models.CharField(max_length=1, choices=SEX_CHOICES, blank=True, default="")
    date_of_birth = models.DateField(null=True, blank=True)

    # Default recipient for reminders
    phone = models.CharField(max_length=30, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    # Follow-up summary, overwritten by every new visit
    last_visit_date = models.DateField(null=True, blank=True)
    next_scheduled_visit = models.DateField(
        null=True,
        blank=True,
        help_text="Explicit next appointment; overrides the interval-based due date",
    )

    # Reminder bookkeeping: written only by the reminder ledger, reset by a new visit
    reminder_count = models.PositiveIntegerField(default=0)
    last_reminder_sent = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)

    # Owning clinician
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="patients",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["last_name", "first_name"]
        indexes = [
            models.Index(fields=["created_by", "is_active"], name="patient_owner_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(reminder_count__gte=0),
                name="patient_reminder_count_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(last_reminder_sent__isnull=True) | Q(reminder_count__gte=1),
                name="patient_last_reminder_implies_count",
            ),
        ]

    def save(self, *args, **kwargs):
        creating = self.pk is None
        super().save(*args, **kwargs)

        # Generate code after we have an ID (first save)
        if creating and not self.patient_code:
            self.patient_code = f"PT-{self.id:06d}"  # e.g. PT-000012
            super().save(update_fields=["patient_code"])

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return f"{self.last_name} {self.first_name}".strip()
