"""
Follow-up policy: when is a patient expected back, and how late are they?

Everything here is pure. The caller passes the moment to evaluate ("as of")
and a ``FollowUpConfig``; nothing reads the clock or Django settings except
``FollowUpConfig.from_settings``.

Day arithmetic works on calendar dates in the clinic time zone: an aware
``as_of`` timestamp is first reduced to its local date, so a patient due on
the 5th becomes overdue (1 day) at local midnight starting the 6th.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone


class FollowUpStatus:
    NO_VISIT = "no_visit"
    ON_TRACK = "on_track"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"

    # Statuses for which a reminder makes sense
    REMINDABLE = (OVERDUE, DUE_SOON)

    CHOICES = (
        (NO_VISIT, "No visit"),
        (ON_TRACK, "On track"),
        (DUE_SOON, "Due soon"),
        (OVERDUE, "Overdue"),
    )


@dataclass(frozen=True)
class FollowUpConfig:
    interval_days: int = 35
    due_soon_days: int = 7
    cooldown_hours: int = 24

    def __post_init__(self):
        if self.interval_days < 1:
            raise ValueError("interval_days must be at least 1")
        if not 0 <= self.due_soon_days <= self.interval_days:
            raise ValueError("due_soon_days must be between 0 and interval_days")
        if self.cooldown_hours < 0:
            raise ValueError("cooldown_hours cannot be negative")

    @classmethod
    def from_settings(cls):
        return cls(
            interval_days=settings.FOLLOW_UP_INTERVAL_DAYS,
            due_soon_days=settings.FOLLOW_UP_DUE_SOON_DAYS,
            cooldown_hours=settings.REMINDER_COOLDOWN_HOURS,
        )


@dataclass(frozen=True)
class FollowUpState:
    status: str
    due_date: Optional[date] = None
    days_overdue: Optional[int] = None
    days_until_due: Optional[int] = None

    @property
    def is_remindable(self):
        return self.status in FollowUpStatus.REMINDABLE


def as_local_date(value) -> date:
    """Reduce a datetime (aware or naive) or date to a clinic-local date."""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localdate(value)
        return value.date()
    return value


def due_date_for(patient, config: FollowUpConfig) -> Optional[date]:
    """Explicit next appointment wins; otherwise last visit + interval."""
    if patient.next_scheduled_visit:
        return patient.next_scheduled_visit
    if patient.last_visit_date:
        return patient.last_visit_date + timedelta(days=config.interval_days)
    return None


def classify(patient, as_of, config: FollowUpConfig) -> FollowUpState:
    due_date = due_date_for(patient, config)
    if due_date is None:
        return FollowUpState(status=FollowUpStatus.NO_VISIT)

    today = as_local_date(as_of)

    # Strict ">": on the due date itself the patient is not overdue yet
    if today > due_date:
        return FollowUpState(
            status=FollowUpStatus.OVERDUE,
            due_date=due_date,
            days_overdue=(today - due_date).days,
        )

    days_until_due = (due_date - today).days
    if days_until_due <= config.due_soon_days:
        status = FollowUpStatus.DUE_SOON
    else:
        status = FollowUpStatus.ON_TRACK

    return FollowUpState(
        status=status,
        due_date=due_date,
        days_until_due=days_until_due,
    )
