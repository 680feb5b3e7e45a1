import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("patients", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Visit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("visit_date", models.DateField(default=django.utils.timezone.localdate)),
                ("visit_type", models.CharField(choices=[("CONSULTATION", "Consultation"), ("FOLLOW_UP", "Follow-up")], default="CONSULTATION", max_length=20)),
                ("next_visit_date", models.DateField(blank=True, null=True)),
                ("diagnosis", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="visits", to=settings.AUTH_USER_MODEL)),
                ("patient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="visits", to="patients.patient")),
            ],
            options={
                "ordering": ["-visit_date", "-created_at"],
                "indexes": [
                    models.Index(fields=["patient", "-visit_date"], name="visit_patient_date_idx"),
                ],
            },
        ),
    ]
