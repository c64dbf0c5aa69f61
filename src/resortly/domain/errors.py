"""Reservation engine exceptions.

Each family maps to one HTTP status at the API boundary:
validation -> 400, not found -> 404, forbidden -> 403, conflict -> 409.
"""

from __future__ import annotations

from datetime import date


class ReservationError(Exception):
    """Base class for all reservation engine errors."""


# ── 400 ──────────────────────────────────────────────────────────────────────


class ReservationValidationError(ReservationError):
    """Input is malformed or violates a booking rule."""


class BookingValidationError(ReservationValidationError):
    """A booking request failed boundary validation (dates, ids)."""


class InvalidIntervalError(ReservationValidationError):
    """The interval covers less than one night."""

    def __init__(self, start_date: date, end_date: date) -> None:
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Interval {start_date} to {end_date} must cover at least one night"
        )


class PriceOutOfRangeError(ReservationValidationError):
    """The stay's total does not fit the stored price column."""

    def __init__(self, nightly_rate: int, nights: int) -> None:
        self.nightly_rate = nightly_rate
        self.nights = nights
        super().__init__(
            f"Total price for {nights} nights at {nightly_rate} exceeds the maximum"
        )


class CompletionNotDueError(ReservationValidationError):
    """Manual completion attempted before the stay has started."""

    def __init__(self, reservation_id: str, start_date: date) -> None:
        self.reservation_id = reservation_id
        self.start_date = start_date
        super().__init__(
            f"Reservation {reservation_id} cannot be completed before {start_date}"
        )


# ── 404 ──────────────────────────────────────────────────────────────────────


class NotFoundError(ReservationError):
    """Referenced entity is absent or logically deleted."""


class RoomNotFoundError(NotFoundError):
    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class ReservationNotFoundError(NotFoundError):
    def __init__(self, reservation_id: str) -> None:
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} not found")


# ── 403 ──────────────────────────────────────────────────────────────────────


class ForbiddenError(ReservationError):
    """Caller may not act on this reservation."""


# ── 409 ──────────────────────────────────────────────────────────────────────


class ConflictError(ReservationError):
    """Operation is no longer valid given the current state."""


class RoomUnavailableError(ConflictError):
    """The room is occupied for (part of) the requested interval."""

    def __init__(
        self,
        room_id: str,
        start_date: date,
        end_date: date,
        conflicting_reservation_id: str | None = None,
    ) -> None:
        self.room_id = room_id
        self.start_date = start_date
        self.end_date = end_date
        self.conflicting_reservation_id = conflicting_reservation_id
        super().__init__(
            f"Room {room_id} is not available from {start_date} to {end_date}"
        )


class InvalidTransitionError(ConflictError):
    """The event is not allowed from the reservation's current status."""

    def __init__(self, reservation_id: str, status: str, event: str) -> None:
        self.reservation_id = reservation_id
        self.status = status
        self.event = event
        super().__init__(
            f"Cannot {event} reservation {reservation_id} with status '{status}'"
        )


class StaleReservationStatusError(ConflictError):
    """The status changed between read and write (lost compare-and-swap)."""

    def __init__(self, reservation_id: str, expected_status: str) -> None:
        self.reservation_id = reservation_id
        self.expected_status = expected_status
        super().__init__(
            f"Reservation {reservation_id} is no longer '{expected_status}'"
        )
