# -*- coding: utf-8 -*-
"""
SMS sending through Africa's Talking.

- Normalize phone numbers to E.164 using the clinic's default country code
- Mask phone numbers in log output
- Return a structured result dict with the provider message id
- Hard HTTP timeout so a slow provider never holds a request for long
- Forces UTF-8 encoding for accented characters
"""

import logging
import re

import requests as http_requests

from django.conf import settings

logger = logging.getLogger(__name__)

PROVIDER = "africastalking"

# ---------------------------------------------------------------------------
# Phone number helpers
# ---------------------------------------------------------------------------
_DIGITS_ONLY = re.compile(r"[^\d+]")
_E164_PATTERN = re.compile(r"^\+\d{8,15}$")


def normalize_phone(raw, country_code=None):
    """
    Normalize a phone number to E.164 format.

    With the default country code "+243":
        "0812345678"    -> "+243812345678"
        "812345678"     -> "+243812345678"
        "+243812345678" -> "+243812345678"
        "243812345678"  -> "+243812345678"

    Returns None if the result does not match E.164.
    """
    if not raw:
        return None

    country_code = country_code or settings.SMS_DEFAULT_COUNTRY_CODE
    country_digits = country_code.lstrip("+")

    phone = _DIGITS_ONLY.sub("", raw.strip())

    if phone.startswith("+"):
        pass
    # International prefix "00"
    elif phone.startswith("00"):
        phone = "+" + phone[2:]
    # Country code without +
    elif phone.startswith(country_digits) and len(phone) >= len(country_digits) + 8:
        phone = "+" + phone
    # Local format starting with 0
    elif phone.startswith("0") and len(phone) >= 9:
        phone = country_code + phone[1:]
    # Bare local number (no leading 0)
    elif len(phone) >= 8:
        phone = country_code + phone

    if _E164_PATTERN.match(phone):
        return phone
    return None


def mask_phone(phone):
    """
    Mask a phone number for safe logging.
    "+243812345678" -> "+2438*****678"
    """
    if not phone or len(phone) <= 7:
        return "***"
    return phone[:5] + "*" * (len(phone) - 8) + phone[-3:]


# ---------------------------------------------------------------------------
# Main send function
# ---------------------------------------------------------------------------
def send_sms(phone_number: str, message: str) -> dict:
    """
    Send an SMS via Africa's Talking.

    Returns:
        {
            "ok": bool,
            "provider": "africastalking",
            "message_id": str | None,
            "error": str | None,
            "phone_normalised": str | None,
        }
    """
    result = {
        "ok": False,
        "provider": PROVIDER,
        "message_id": None,
        "error": None,
        "phone_normalised": None,
    }

    normalised = normalize_phone(phone_number)
    if not normalised:
        result["error"] = f"Invalid phone number: {mask_phone(phone_number)}"
        logger.warning("SMS skipped, invalid phone: %s", mask_phone(phone_number))
        return result

    result["phone_normalised"] = normalised
    masked = mask_phone(normalised)

    username = settings.AFRICASTALKING_USERNAME
    api_key = settings.AFRICASTALKING_API_KEY
    sender_id = settings.AFRICASTALKING_SENDER_ID

    if not username or not api_key:
        result["error"] = "SMS provider not configured"
        logger.error("Africa's Talking credentials not configured")
        return result

    api_url = (
        "https://api.sandbox.africastalking.com/version1/messaging"
        if username == "sandbox"
        else "https://api.africastalking.com/version1/messaging"
    )

    payload = {
        "username": username,
        "to": normalised,
        "message": message,
        "bulkSMSMode": 1,
    }
    if sender_id:
        payload["from"] = sender_id

    headers = {
        "Accept": "application/json",
        "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
        "apiKey": api_key,
    }

    try:
        # requests urlencodes the dict as UTF-8; with charset=UTF-8 in the
        # Content-Type accented characters reach the handset intact.
        resp = http_requests.post(
            api_url,
            data=payload,
            headers=headers,
            timeout=settings.SMS_HTTP_TIMEOUT,
        )

        if resp.status_code >= 400:
            snippet = resp.text[:200] if resp.text else "(empty)"
            result["error"] = f"HTTP {resp.status_code}: {snippet}"
            logger.warning("SMS HTTP error for %s: %s %s", masked, resp.status_code, snippet)
            return result

        try:
            response = resp.json()
        except (ValueError, TypeError):
            snippet = resp.text[:200] if resp.text else "(empty)"
            result["error"] = f"Invalid JSON from provider: {snippet}"
            logger.warning("SMS non-JSON response for %s: %s", masked, snippet)
            return result

        # {"SMSMessageData": {"Recipients": [{"status": "Success", "messageId": "...", ...}]}}
        recipients = response.get("SMSMessageData", {}).get("Recipients", [])

        if recipients:
            status = recipients[0].get("status", "Unknown")
            msg_id = recipients[0].get("messageId")

            if status == "Success":
                result["ok"] = True
                result["message_id"] = msg_id
                logger.info("SMS sent to %s  [msg_id=%s]", masked, msg_id)
            else:
                result["error"] = f"Provider status: {status}"
                logger.warning("SMS failed for %s: %s", masked, status)
        else:
            result["error"] = "No recipients in provider response"
            logger.warning("SMS failed for %s: empty recipients in response", masked)

    except http_requests.RequestException as exc:
        result["error"] = str(exc)[:200]
        logger.error("SMS send error for %s: %s", masked, exc)

    return result
