"""
Time utilities for the Workspace Task Tracker.

This module provides a single source of truth for time operations,
ensuring consistency across all endpoints and preventing clock drift issues.
Month windows follow the Gregorian civil calendar (not fixed 30-day spans).
"""

from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)
    and convert aware ones to UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_month(moment: datetime) -> datetime:
    """First instant of the calendar month containing ``moment``."""
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def end_of_month(moment: datetime) -> datetime:
    """Last microsecond of the calendar month containing ``moment``."""
    last_day = monthrange(moment.year, moment.month)[1]
    return moment.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)


def subtract_month(moment: datetime) -> datetime:
    """
    Same moment one calendar month earlier.

    The day is clamped to the length of the previous month, so March 31
    becomes February 28 (or 29 in a leap year).
    """
    prev_month = moment.month - 1 if moment.month > 1 else 12
    prev_year = moment.year if moment.month > 1 else moment.year - 1
    max_day = monthrange(prev_year, prev_month)[1]
    return moment.replace(year=prev_year, month=prev_month, day=min(moment.day, max_day))


def month_window(moment: datetime) -> Tuple[datetime, datetime]:
    """Inclusive (start, end) bounds of the calendar month containing ``moment``."""
    return start_of_month(moment), end_of_month(moment)


def day_window(day: date, tz: timezone = timezone.utc) -> Tuple[datetime, datetime]:
    """
    Half-open [start, next_start) bounds of one calendar day.

    Used by the due-date filter so "due on 2024-03-01" matches any time
    during that day.
    """
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1)


def is_overdue(due_date: Optional[datetime], status: str, now: Optional[datetime] = None) -> bool:
    """
    Check if a task is overdue.

    A task is overdue if it has a due date in the past and is not DONE.

    Args:
        due_date: The task's due date
        status: The task's status
        now: Reference instant (defaults to the current UTC time)

    Returns:
        True if task is overdue (due in past, not done), False otherwise
    """
    if not due_date or status == "DONE":
        return False
    return ensure_utc(due_date) < ensure_utc(now or utc_now())
