"""UTC datetime and calendar date utilities."""

from datetime import date, datetime, timezone

from dateutil import parser as date_parser


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def to_date(value: date | datetime | str) -> date:
    """
    Reduce a date, datetime or ISO-8601 string to a calendar date.

    Booking ranges are date-only, so any time component is dropped. Aware
    datetimes are converted to UTC first so "2024-06-01T23:30:00-05:00"
    lands on the same night for every caller.

    Args:
        value: date, datetime, or ISO string ("2024-06-01" or "2024-06-01T12:00:00Z")

    Returns:
        date: The calendar date

    Raises:
        ValueError: If the string cannot be parsed
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    return to_date(date_parser.isoparse(value.strip()))
