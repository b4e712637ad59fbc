"""Time and date helpers shared by the generator."""

from datetime import date, datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def normalize_timezone(dt: datetime, target_tz: timezone = timezone.utc) -> datetime:
    """
    Normalize datetime to target timezone.

    Naive datetimes are assumed to be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(target_tz)


def utc_today(now: Optional[datetime] = None) -> date:
    """Current UTC calendar date."""
    return normalize_timezone(now or utc_now()).date()


def day_of_year(day: date) -> int:
    """Ordinal day within the year, 1 for January 1st."""
    return day.timetuple().tm_yday
