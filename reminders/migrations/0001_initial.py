import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("patients", "0001_initial"),
        ("visits", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Reminder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("channel", models.CharField(choices=[("sms", "SMS"), ("whatsapp", "WhatsApp")], max_length=10)),
                ("scheduled_for", models.DateTimeField()),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("sent", "Sent"), ("failed", "Failed")], default="pending", max_length=10)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                ("recipient_phone", models.CharField(blank=True, help_text="Phone number the message was sent to", max_length=30, null=True)),
                ("message", models.TextField(blank=True, default="")),
                ("provider", models.CharField(blank=True, default="", max_length=30)),
                ("provider_message_id", models.CharField(blank=True, default="", help_text="Provider message ID for delivery tracking", max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("patient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="reminders", to="patients.patient")),
                ("sent_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sent_reminders", to=settings.AUTH_USER_MODEL)),
                ("visit", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reminders", to="visits.visit")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["patient", "status"], name="reminder_patient_status_idx"),
                    models.Index(fields=["scheduled_for"], name="reminder_scheduled_for_idx"),
                ],
            },
        ),
    ]
