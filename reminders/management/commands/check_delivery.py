"""
Management command to send a test message through a reminder channel.

Usage:
    python manage.py check_delivery +243812345678
    python manage.py check_delivery 0812345678 --channel whatsapp
    python manage.py check_delivery +243812345678 --message "Custom test message"

Returns exit code 1 on failure so CI/CD or manual checks can detect problems.
Nothing is written to the database.
"""

import sys

from django.conf import settings
from django.core.management.base import BaseCommand

from reminders.models import Reminder
from reminders.services import delivery
from reminders.services.sms import mask_phone


class Command(BaseCommand):
    help = "Send a test message to verify the reminder delivery configuration"

    def add_arguments(self, parser):
        parser.add_argument(
            "phone",
            help="Phone number (E.164 or local format, e.g. +243812345678 or 0812345678)",
        )
        parser.add_argument(
            "--channel",
            choices=[value for value, _label in Reminder.CHANNEL_CHOICES],
            default=Reminder.CHANNEL_SMS,
            help="Delivery channel to test (default: sms)",
        )
        parser.add_argument(
            "--message",
            default=None,
            help="Custom message text",
        )

    def handle(self, *args, **options):
        phone = options["phone"]
        channel = options["channel"]
        message = options["message"] or (
            f"Test message from {settings.CLINIC_NAME}. "
            f"If you received this, reminder delivery is configured correctly."
        )
        masked = mask_phone(phone)

        if channel == Reminder.CHANNEL_SMS:
            self.stdout.write(f"Africa's Talking username: {settings.AFRICASTALKING_USERNAME or '(not set)'}")
            self.stdout.write(f"Sender ID: {settings.AFRICASTALKING_SENDER_ID or '(default/shared)'}")
        self.stdout.write(f"Sending test {channel} message to {masked}...")
        self.stdout.write("")

        result = delivery.send(channel, phone, message)

        if result["ok"]:
            self.stdout.write(self.style.SUCCESS("Message delivered."))
            self.stdout.write(f"  Provider:   {result['provider']}")
            self.stdout.write(f"  Message ID: {result['message_id'] or '-'}")
            self.stdout.write(f"  Phone used: {mask_phone(result.get('phone_normalised') or '')}")
            if result.get("url"):
                self.stdout.write(f"  Open link:  {result['url']}")
        else:
            self.stdout.write(self.style.ERROR("Delivery FAILED."))
            self.stdout.write(f"  Error: {result['error']}")
            self.stdout.write("")
            self.stdout.write("Troubleshooting:")
            self.stdout.write("  1. Check AFRICASTALKING_USERNAME and AFRICASTALKING_API_KEY env vars")
            self.stdout.write(f"  2. Verify phone number format (default country code {settings.SMS_DEFAULT_COUNTRY_CODE})")
            self.stdout.write("  3. Check Africa's Talking dashboard for account balance")
            sys.exit(1)
