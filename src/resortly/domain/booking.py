"""Validated booking request.

Booking input is checked once, at the boundary, and turned into an immutable
BookingRequest. The lifecycle only ever receives this value.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from resortly.domain.errors import BookingValidationError
from resortly.infra.time import utc_today

MIN_NIGHTS = 1


@dataclass(frozen=True)
class BookingRequest:
    customer_id: str
    room_id: str
    start_date: date
    end_date: date

    @property
    def nights(self) -> int:
        return (self.end_date - self.start_date).days


def parse_uuid(value: str, *, field: str) -> str:
    """Normalise a UUID string.

    Raises:
        BookingValidationError: If value is not a UUID.
    """
    try:
        return str(UUID(str(value)))
    except (TypeError, ValueError):
        raise BookingValidationError(f"Invalid {field} format") from None


def validate_stay_dates(
    start_date: date | None,
    end_date: date | None,
    *,
    today: date | None = None,
) -> None:
    """Check a requested stay.

    Rules: both dates present; start not in the past; start before end;
    at least MIN_NIGHTS nights. The stay length has no upper bound.

    Raises:
        BookingValidationError: On the first rule violated.
    """
    if start_date is None or end_date is None:
        raise BookingValidationError("Start date and end date are required")

    if today is None:
        today = utc_today()

    if start_date < today:
        raise BookingValidationError("Start date cannot be in the past")

    if start_date >= end_date:
        raise BookingValidationError("End date must be after start date")

    if (end_date - start_date).days < MIN_NIGHTS:
        raise BookingValidationError(f"Minimum stay is {MIN_NIGHTS} night")


def validate_booking_request(
    *,
    customer_id: str,
    room_id: str,
    start_date: date | None,
    end_date: date | None,
    today: date | None = None,
) -> BookingRequest:
    """Validate raw booking input and freeze it into a BookingRequest.

    Raises:
        BookingValidationError: Malformed room id or invalid dates.
    """
    room_id = parse_uuid(room_id, field="room ID")
    validate_stay_dates(start_date, end_date, today=today)
    return BookingRequest(
        customer_id=customer_id,
        room_id=room_id,
        start_date=start_date,
        end_date=end_date,
    )
