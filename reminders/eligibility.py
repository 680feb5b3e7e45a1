"""
Reminder cooldown rules.

``can_send`` answers "may this patient receive a reminder at ``now``?" from
the last-sent timestamp alone. Elapsed time is counted in whole hours
(floor), so a reminder sent 23h59m ago is still 1 hour away from the next
slot, and exactly 24h later the next one is allowed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

DEFAULT_COOLDOWN_HOURS = 24

_SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class ReminderEligibility:
    eligible: bool
    hours_remaining: int = 0
    next_allowed_at: Optional[datetime] = None


def elapsed_hours(since: datetime, now: datetime) -> int:
    """Whole hours between two instants; a ``since`` in the future counts as 0."""
    seconds = (now - since).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // _SECONDS_PER_HOUR)


def can_send(
    last_reminder_sent: Optional[datetime],
    now: datetime,
    cooldown_hours: int = DEFAULT_COOLDOWN_HOURS,
) -> ReminderEligibility:
    if last_reminder_sent is None:
        return ReminderEligibility(eligible=True)

    elapsed = elapsed_hours(last_reminder_sent, now)
    if elapsed >= cooldown_hours:
        return ReminderEligibility(eligible=True)

    return ReminderEligibility(
        eligible=False,
        hours_remaining=cooldown_hours - elapsed,
        next_allowed_at=last_reminder_sent + timedelta(hours=cooldown_hours),
    )


def _plural(count, singular, plural=None):
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


def describe_last_sent(last_reminder_sent: datetime, now: datetime) -> str:
    hours = elapsed_hours(last_reminder_sent, now)
    if hours < 1:
        return "less than an hour ago"
    if hours < 24:
        return f"{_plural(hours, 'hour')} ago"
    return f"{_plural(hours // 24, 'day')} ago"


def describe_reminder_status(
    reminder_count: int,
    last_reminder_sent: Optional[datetime],
    now: datetime,
    cooldown_hours: int = DEFAULT_COOLDOWN_HOURS,
) -> str:
    """
    Human-readable reminder summary shown next to the "send" button.

        "No reminders sent yet"
        "1 reminder sent, last one 3 hours ago. Next reminder available in 21 hours."
        "4 reminders sent, last one 2 days ago"
    """
    if not reminder_count and last_reminder_sent is None:
        return "No reminders sent yet"

    text = _plural(reminder_count, "reminder") + " sent"
    if last_reminder_sent is None:
        return text

    text = f"{text}, last one {describe_last_sent(last_reminder_sent, now)}"

    eligibility = can_send(last_reminder_sent, now, cooldown_hours)
    if not eligibility.eligible:
        text = (
            f"{text}. Next reminder available in "
            f"{_plural(eligibility.hours_remaining, 'hour')}."
        )
    return text
