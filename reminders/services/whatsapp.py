"""
WhatsApp click-to-chat reminders.

There is no WhatsApp provider behind this channel: the clinician's device
opens the returned wa.me link with the message pre-filled and sends it from
their own account. Delivery therefore "succeeds" as soon as a valid link can
be built.
"""

import logging
from urllib.parse import quote

from reminders.exceptions import DeliveryError
from reminders.services.sms import mask_phone, normalize_phone

logger = logging.getLogger(__name__)

PROVIDER = "whatsapp_link"


def _normalised_or_raise(phone_number):
    normalised = normalize_phone(phone_number)
    if not normalised:
        raise DeliveryError(f"Invalid phone number: {mask_phone(phone_number)}")
    return normalised


def build_whatsapp_url(phone_number, message):
    """'+243812345678', 'Hello' -> 'https://wa.me/243812345678?text=Hello'"""
    digits = _normalised_or_raise(phone_number).lstrip("+")
    return f"https://wa.me/{digits}?text={quote(message or '', safe='')}"


def send_whatsapp(phone_number, message):
    normalised = _normalised_or_raise(phone_number)
    url = build_whatsapp_url(normalised, message)
    logger.info("WhatsApp link prepared for %s", mask_phone(normalised))
    return {
        "ok": True,
        "provider": PROVIDER,
        "message_id": None,
        "error": None,
        "phone_normalised": normalised,
        "url": url,
    }
