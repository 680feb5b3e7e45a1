"""
Single source of "now" for the follow-up and reminder rules.

Views resolve an optional ``as_of`` value once per request and pass the
result down; the policy functions never read the clock themselves.
"""

from datetime import date, datetime, time

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import ValidationError


def now():
    return timezone.now()


def resolve_as_of(value=None):
    """
    Turn an ``as_of`` value into an aware datetime.

        None / ""               -> wall-clock now
        "2024-02-10"            -> 2024-02-10 00:00 in the clinic time zone
        "2024-02-10T09:30:00Z"  -> that instant
    """
    if value is None:
        return now()

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    else:
        raw = str(value).strip()
        if not raw:
            return now()
        try:
            dt = parse_datetime(raw)
            if dt is None:
                parsed = parse_date(raw)
                dt = datetime.combine(parsed, time.min) if parsed else None
        except ValueError:
            dt = None
        if dt is None:
            raise ValidationError(
                f"Invalid as_of value '{raw}'. Use YYYY-MM-DD or an ISO-8601 datetime.",
                field="as_of",
            )

    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt
