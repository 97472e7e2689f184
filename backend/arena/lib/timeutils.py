"""
Time helpers for slot arithmetic.

Time slot templates are wall-clock times at the venue. Everything stored
or compared in the engine is UTC.
"""
from datetime import date, datetime, time, timedelta, timezone

import pytz

from arena.lib.settings import settings


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    SQLite hands back naive values for timezone-aware columns; those
    were written as UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def venue_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.venue_timezone)


def slot_datetime(day: date, wall_time: time) -> datetime:
    """
    Convert a venue wall-clock time on a given day to UTC.

    Args:
        day: Calendar date of the booking
        wall_time: Slot template time (start or end)

    Returns:
        Aware UTC datetime
    """
    local = venue_timezone().localize(datetime.combine(day, wall_time))
    return local.astimezone(timezone.utc)


def slot_end_datetime(day: date, start: time, end: time) -> datetime:
    """End of a slot in UTC; an end at or before the start rolls over midnight."""
    end_at = slot_datetime(day, end)
    if end <= start:
        end_at = venue_timezone().localize(
            datetime.combine(day + timedelta(days=1), end)
        ).astimezone(timezone.utc)
    return end_at


def hours_between(earlier: datetime, later: datetime) -> float:
    """Signed hours from `earlier` to `later`."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600


def venue_today(now: datetime) -> date:
    """Calendar date at the venue for a UTC instant."""
    return ensure_utc(now).astimezone(venue_timezone()).date()
