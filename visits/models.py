from django.conf import settings
from django.db import models
from django.utils import timezone


class Visit(models.Model):
    # Core link
    patient = models.ForeignKey(
        "patients.Patient",
        on_delete=models.CASCADE,
        related_name="visits",
    )

    # Owner (clinician who recorded this visit)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="visits",
        null=True,
        blank=True,
    )

    # When / what type
    visit_date = models.DateField(default=timezone.localdate)
    VISIT_TYPES = (
        ("CONSULTATION", "Consultation"),
        ("FOLLOW_UP", "Follow-up"),
    )
    visit_type = models.CharField(max_length=20, choices=VISIT_TYPES, default="CONSULTATION")

    # Clinician's explicit next-appointment instruction
    next_visit_date = models.DateField(null=True, blank=True)

    diagnosis = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    # Metadata
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-visit_date", "-created_at"]
        indexes = [
            models.Index(fields=["patient", "-visit_date"], name="visit_patient_date_idx"),
        ]

    def __str__(self):
        return f"Visit #{self.id} - {self.patient} - {self.visit_date:%Y-%m-%d}"
