"""Reservation lifecycle - creation and status transitions.

States: pending (initial), approved, rejected, cancelled, completed.

    pending  --approve (owner, room still free)-->  approved
    pending  --reject  (owner)-->                   rejected
    pending  --cancel  (customer or owner)-->       cancelled
    approved --cancel  (owner)-->                   cancelled
    approved --complete (owner once started,
                         system once elapsed)-->    completed

Each operation runs in one short transaction:
load -> authorize -> resolve transition -> guard -> compare-and-swap status.
Authorization always precedes the guard. A lost compare-and-swap is a
conflict, never an overwrite of a concurrent decision.

Creation and approval both lock the room row before reading availability,
so per room they are serialised against each other. With the default
approved-only occupancy policy two pending reservations may overlap; the
approval re-check (plus the database exclusion constraint) lets at most one
of them become approved.

is_feedback_eligible() is the hook the feedback service calls before it
accepts a review for a reservation: only completed stays qualify.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from resortly.domain.availability import (
    assert_room_available,
    occupying_statuses,
    require_bookable_room,
)
from resortly.domain.booking import BookingRequest
from resortly.domain.errors import (
    BookingValidationError,
    CompletionNotDueError,
    ForbiddenError,
    InvalidTransitionError,
    ReservationNotFoundError,
    RoomUnavailableError,
    StaleReservationStatusError,
)
from resortly.domain.pricing import calculate_total_price
from resortly.infra.db import txn
from resortly.infra.repositories.reservations_repository import (
    ReservationRecord,
    compare_and_set_status,
    get_reservation,
    insert_reservation,
    list_reservations_for_customer,
    list_reservations_for_owner,
)
from resortly.infra.time import utc_today
from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context

logger = get_logger(__name__)

STATUSES = ("pending", "approved", "rejected", "completed", "cancelled")

# Parties a caller can act as, relative to one reservation.
CUSTOMER = "customer"
OWNER = "owner"
SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Caller identity as resolved by the identity collaborator."""

    user_id: str
    role: str


@dataclass(frozen=True)
class Transition:
    from_status: str
    event: str
    parties: frozenset[str]
    to_status: str


TRANSITIONS: tuple[Transition, ...] = (
    Transition("pending", "approve", frozenset({OWNER}), "approved"),
    Transition("pending", "reject", frozenset({OWNER}), "rejected"),
    Transition("pending", "cancel", frozenset({CUSTOMER, OWNER}), "cancelled"),
    Transition("approved", "cancel", frozenset({OWNER}), "cancelled"),
    Transition("approved", "complete", frozenset({OWNER, SYSTEM}), "completed"),
)

# Target statuses accepted by the owner's status endpoint.
_STATUS_EVENTS = {"approved": "approve", "rejected": "reject"}


def parties_for(reservation: ReservationRecord, actor: Actor) -> frozenset[str]:
    """Which sides of the reservation the actor stands on (possibly both)."""
    parties = set()
    if actor.user_id == reservation.customer_id:
        parties.add(CUSTOMER)
    if actor.user_id == reservation.owner_id:
        parties.add(OWNER)
    return frozenset(parties)


def authorize(reservation: ReservationRecord, actor: Actor, event: str) -> frozenset[str]:
    """Check the actor may attempt the event at all, whatever the status.

    Returns:
        The actor's parties on this reservation.

    Raises:
        ForbiddenError: Actor is neither customer nor resort owner, or their
            side never performs this event (e.g. a customer approving).
    """
    parties = parties_for(reservation, actor)
    if not parties:
        raise ForbiddenError("Not allowed to access this reservation")

    allowed = frozenset().union(*(t.parties for t in TRANSITIONS if t.event == event))
    if not parties & allowed:
        raise ForbiddenError(f"Not allowed to {event} this reservation")
    return parties


def resolve_transition(
    reservation: ReservationRecord,
    event: str,
    parties: frozenset[str],
) -> Transition:
    """Find the transition for the reservation's current status.

    Raises:
        InvalidTransitionError: No row of TRANSITIONS matches.
    """
    for transition in TRANSITIONS:
        if (
            transition.from_status == reservation.status
            and transition.event == event
            and transition.parties & parties
        ):
            return transition
    raise InvalidTransitionError(reservation.id, reservation.status, event)


def apply_transition(
    cur: PgCursor,
    reservation: ReservationRecord,
    transition: Transition,
) -> ReservationRecord:
    """Compare-and-swap the status from transition.from_status to transition.to_status.

    Raises:
        StaleReservationStatusError: The row no longer holds from_status.
    """
    updated = compare_and_set_status(
        cur,
        reservation,
        expected_status=transition.from_status,
        new_status=transition.to_status,
    )
    if updated is None:
        raise StaleReservationStatusError(reservation.id, transition.from_status)
    return updated


def _load(cur: PgCursor, reservation_id: str) -> ReservationRecord:
    reservation = get_reservation(cur, reservation_id)
    if reservation is None:
        raise ReservationNotFoundError(reservation_id)
    return reservation


def _log_transition(reservation: ReservationRecord, event: str, actor_id: str) -> None:
    logger.info(
        "reservation status changed",
        extra={
            "extra_fields": safe_log_context(
                reservation_id=reservation.id,
                room_id=reservation.room_id,
                event=event,
                status=reservation.status,
                actor_id=actor_id,
            )
        },
    )


# ── Creation ─────────────────────────────────────────────────────────────────


def create_reservation(request: BookingRequest) -> ReservationRecord:
    """Create a pending reservation for a validated booking request.

    Locks the room row, checks availability, prices the stay and inserts,
    all in one transaction.

    Raises:
        RoomNotFoundError: Room missing or deleted.
        RoomUnavailableError: Interval overlaps an occupying reservation.
        InvalidIntervalError: Stay shorter than one night.
        PriceOutOfRangeError: Total does not fit the price column.
    """
    with txn() as cur:
        room = require_bookable_room(cur, request.room_id, lock=True)
        assert_room_available(
            cur,
            room_id=room.id,
            start_date=request.start_date,
            end_date=request.end_date,
        )
        total_price = calculate_total_price(
            room.nightly_rate, request.start_date, request.end_date
        )
        reservation = insert_reservation(
            cur,
            customer_id=request.customer_id,
            room_id=room.id,
            owner_id=room.owner_id,
            start_date=request.start_date,
            end_date=request.end_date,
            total_price=total_price,
        )

    logger.info(
        "reservation created",
        extra={
            "extra_fields": safe_log_context(
                reservation_id=reservation.id,
                room_id=reservation.room_id,
                start_date=reservation.start_date,
                end_date=reservation.end_date,
                nights=request.nights,
                total_price=total_price,
            )
        },
    )
    return reservation


# ── Owner / customer transitions ─────────────────────────────────────────────


def approve_reservation(reservation_id: str, actor: Actor) -> ReservationRecord:
    """Approve a pending reservation after re-validating availability.

    Time has passed since creation, so the room is re-checked against every
    other occupying reservation while holding the room lock.

    Raises:
        ReservationNotFoundError, ForbiddenError, InvalidTransitionError,
        RoomUnavailableError, StaleReservationStatusError.
    """
    with txn() as cur:
        reservation = _load(cur, reservation_id)
        parties = authorize(reservation, actor, "approve")
        transition = resolve_transition(reservation, "approve", parties)

        require_bookable_room(cur, reservation.room_id, lock=True)
        assert_room_available(
            cur,
            room_id=reservation.room_id,
            start_date=reservation.start_date,
            end_date=reservation.end_date,
            exclude_reservation_id=reservation.id,
            statuses=occupying_statuses(),
        )

        try:
            updated = apply_transition(cur, reservation, transition)
        except pg_errors.ExclusionViolation:
            raise RoomUnavailableError(
                room_id=reservation.room_id,
                start_date=reservation.start_date,
                end_date=reservation.end_date,
            ) from None

    _log_transition(updated, "approve", actor.user_id)
    return updated


def _simple_transition(reservation_id: str, actor: Actor, event: str) -> ReservationRecord:
    with txn() as cur:
        reservation = _load(cur, reservation_id)
        parties = authorize(reservation, actor, event)
        transition = resolve_transition(reservation, event, parties)
        updated = apply_transition(cur, reservation, transition)

    _log_transition(updated, event, actor.user_id)
    return updated


def reject_reservation(reservation_id: str, actor: Actor) -> ReservationRecord:
    """Reject a pending reservation (resort owner only)."""
    return _simple_transition(reservation_id, actor, "reject")


def cancel_reservation(reservation_id: str, actor: Actor) -> ReservationRecord:
    """Cancel a reservation.

    The customer may cancel only while pending; the resort owner may cancel
    pending or approved reservations. Cancellation sets a terminal status;
    the row is never erased and the soft-delete flag is left untouched.
    """
    return _simple_transition(reservation_id, actor, "cancel")


def complete_reservation(
    reservation_id: str,
    actor: Actor,
    *,
    today: date | None = None,
) -> ReservationRecord:
    """Owner closes out an approved reservation once the stay has started.

    Raises:
        CompletionNotDueError: today is before start_date.
    """
    if today is None:
        today = utc_today()

    with txn() as cur:
        reservation = _load(cur, reservation_id)
        parties = authorize(reservation, actor, "complete")
        transition = resolve_transition(reservation, "complete", parties)
        if today < reservation.start_date:
            raise CompletionNotDueError(reservation.id, reservation.start_date)
        updated = apply_transition(cur, reservation, transition)

    _log_transition(updated, "complete", actor.user_id)
    return updated


def update_reservation_status(
    reservation_id: str,
    actor: Actor,
    status: str,
) -> ReservationRecord:
    """Owner decision on a pending reservation: 'approved' or 'rejected'.

    Raises:
        BookingValidationError: Any other target status.
    """
    event = _STATUS_EVENTS.get(status)
    if event is None:
        raise BookingValidationError(
            f"Status must be one of {sorted(_STATUS_EVENTS)}, got '{status}'"
        )
    if event == "approve":
        return approve_reservation(reservation_id, actor)
    return reject_reservation(reservation_id, actor)


# ── Reads ────────────────────────────────────────────────────────────────────


def get_reservation_for_actor(reservation_id: str, actor: Actor) -> ReservationRecord:
    """Fetch a reservation visible to its customer or resort owner."""
    with txn() as cur:
        reservation = _load(cur, reservation_id)
    if not parties_for(reservation, actor):
        raise ForbiddenError("Not allowed to access this reservation")
    return reservation


def list_reservations_for_actor(
    actor: Actor,
    *,
    status: str | None = None,
) -> list[ReservationRecord]:
    """Owners see reservations for their resorts; everyone else sees their own."""
    if status is not None and status not in STATUSES:
        raise BookingValidationError(f"Unknown status '{status}'")

    with txn() as cur:
        if actor.role == OWNER:
            return list_reservations_for_owner(cur, actor.user_id, status=status)
        return list_reservations_for_customer(cur, actor.user_id, status=status)


def is_feedback_eligible(reservation: ReservationRecord) -> bool:
    """Feedback may only be left for stays that reached 'completed'."""
    return reservation.status == "completed"
