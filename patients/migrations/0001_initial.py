import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Patient",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("patient_code", models.CharField(blank=True, db_index=True, max_length=20, unique=True)),
                ("first_name", models.CharField(max_length=100)),
                ("last_name", models.CharField(blank=True, default="", max_length=100)),
                ("sex", models.CharField(blank=True, choices=[("M", "Male"), ("F", "Female"), ("O", "Other")], default="", max_length=1)),
                ("date_of_birth", models.DateField(blank=True, null=True)),
                ("phone", models.CharField(blank=True, default="", max_length=30)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("address", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("last_visit_date", models.DateField(blank=True, null=True)),
                ("next_scheduled_visit", models.DateField(blank=True, help_text="Explicit next appointment; overrides the interval-based due date", null=True)),
                ("reminder_count", models.PositiveIntegerField(default=0)),
                ("last_reminder_sent", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="patients", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["last_name", "first_name"],
                "indexes": [
                    models.Index(fields=["created_by", "is_active"], name="patient_owner_active_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("reminder_count__gte", 0)),
                        name="patient_reminder_count_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("last_reminder_sent__isnull", True), ("reminder_count__gte", 1), _connector="OR"),
                        name="patient_last_reminder_implies_count",
                    ),
                ],
            },
        ),
    ]
