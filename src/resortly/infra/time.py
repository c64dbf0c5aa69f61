"""Time utilities for consistent timestamp handling.

Reservation intervals are calendar dates; "today" is always the UTC date so
that every API instance and the sweeper agree on when a stay has started or
elapsed.
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Return the current UTC calendar date."""
    return utc_now().date()


def as_calendar_date(value: date | datetime) -> date:
    """Reduce a date or datetime to its calendar date.

    Aware datetimes are converted to UTC first.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value
