"""
Message delivery dispatcher used by the reminder ledger.

``send`` never raises: channel errors and unexpected exceptions come back as
``{"ok": False, "error": ...}`` so a provider outage can only ever mark a
reminder as failed.
"""

import logging

from reminders.exceptions import DeliveryError
from reminders.models import Reminder
from reminders.services.sms import mask_phone, send_sms
from reminders.services.whatsapp import send_whatsapp

logger = logging.getLogger(__name__)

CHANNELS = {
    Reminder.CHANNEL_SMS: send_sms,
    Reminder.CHANNEL_WHATSAPP: send_whatsapp,
}


def _failure(provider, error):
    return {
        "ok": False,
        "provider": provider,
        "message_id": None,
        "error": error,
        "phone_normalised": None,
    }


def send(channel, recipient_phone, message):
    sender = CHANNELS.get(channel)
    if sender is None:
        return _failure("", f"Unsupported channel: {channel}")

    try:
        return sender(recipient_phone, message)
    except DeliveryError as exc:
        logger.warning("%s delivery to %s failed: %s", channel, mask_phone(recipient_phone), exc)
        return _failure(channel, str(exc))
    except Exception as exc:
        logger.exception("Unexpected %s delivery error for %s", channel, mask_phone(recipient_phone))
        return _failure(channel, str(exc)[:200] or exc.__class__.__name__)
