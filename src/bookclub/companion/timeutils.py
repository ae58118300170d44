"""UTC date/time helpers shared by goals, progress and statistics.

All instants handled by the companion are timezone-aware UTC datetimes.
Naive datetimes are assumed to already be in UTC.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union

from dateutil import parser as date_parser


def utcnow() -> datetime:
    """Return the current datetime in UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert a datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Normalize a string, date or datetime into an aware UTC datetime.

    Args:
        value: ISO-8601 string (``Z`` suffix accepted), date or datetime

    Returns:
        UTC datetime, or None for empty input

    Raises:
        ValueError: If a string cannot be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return as_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    try:
        parsed = date_parser.isoparse(str(value).strip())
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid datetime: {value}") from e
    return as_utc(parsed)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO-8601 UTC string with a ``Z`` suffix."""
    if value is None:
        return None
    return as_utc(value).isoformat().replace("+00:00", "Z")
