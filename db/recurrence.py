"""Recurrence patterns for scheduled tasks.

next_run_time() is pure: given a pattern and a starting instant it returns
the next instant, or None for one-time tasks and unknown patterns. Daily,
weekly and monthly steps are calendar steps in the starting datetime's own
timezone, so a 09:00 daily task stays at 09:00 across DST changes.
"""

import calendar
from datetime import datetime, timedelta, timezone

from db.errors import InvalidRecurrenceError

RECURRENCE_NONE = ""
RECURRENCE_HOURLY = "hourly"
RECURRENCE_DAILY = "daily"
RECURRENCE_WEEKLY = "weekly"
RECURRENCE_MONTHLY = "monthly"

RECURRENCE_PATTERNS = (
    RECURRENCE_HOURLY,
    RECURRENCE_DAILY,
    RECURRENCE_WEEKLY,
    RECURRENCE_MONTHLY,
)


def _add_month(value: datetime) -> datetime:
    # Clamp to the last day of a shorter month (Jan 31 -> Feb 28/29).
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_run_time(recurrence: str, from_time: datetime) -> datetime | None:
    """Return the next scheduled time after from_time, or None."""
    if recurrence == RECURRENCE_NONE:
        return None

    if recurrence == RECURRENCE_HOURLY:
        if from_time.tzinfo is None:
            return from_time + timedelta(hours=1)
        # Elapsed hour, not wall-clock hour.
        utc = from_time.astimezone(timezone.utc) + timedelta(hours=1)
        return utc.astimezone(from_time.tzinfo)
    if recurrence == RECURRENCE_DAILY:
        return from_time + timedelta(days=1)
    if recurrence == RECURRENCE_WEEKLY:
        return from_time + timedelta(days=7)
    if recurrence == RECURRENCE_MONTHLY:
        return _add_month(from_time)
    return None


def validate_recurrence(recurrence: str) -> str:
    """Return recurrence unchanged, or raise InvalidRecurrenceError."""
    if recurrence != RECURRENCE_NONE and recurrence not in RECURRENCE_PATTERNS:
        valid = ", ".join(RECURRENCE_PATTERNS)
        raise InvalidRecurrenceError(
            f"Unknown recurrence '{recurrence}'. Must be empty or one of: {valid}"
        )
    return recurrence
