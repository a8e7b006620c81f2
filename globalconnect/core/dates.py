from datetime import datetime, timedelta, timezone
from typing import Optional


# MongoDB hands datetimes back naive, so everything is stored as naive UTC.
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def minutes_ago(minutes: int) -> datetime:
    return utcnow() - timedelta(minutes=minutes)


def days_ago(days: int) -> datetime:
    return utcnow() - timedelta(days=days)


def age_from_dob(dob: datetime) -> int:
    today = utcnow().date()
    born = dob.date()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def format_long_date(value: Optional[datetime]) -> Optional[str]:
    """Render a date the way the mobile client shows it, e.g. ``March 4, 2025``."""
    if value is None:
        return None
    return f"{value.strftime('%B')} {value.day}, {value.year}"
