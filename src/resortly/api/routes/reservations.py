"""Reservation endpoints.

Public (no auth):
- GET  /reservations/availability/{room_id}  - is the room free, and what would it cost
- GET  /reservations/booked-dates/{room_id}  - occupied intervals for a calendar

Authenticated:
- POST   /reservations                   - customer books a room (pending)
- GET    /reservations                   - caller's reservations
- GET    /reservations/{id}              - one reservation (customer or resort owner)
- PUT    /reservations/{id}/status       - owner approves or rejects
- DELETE /reservations/{id}              - cancel
- PUT    /reservations/{id}/complete     - owner closes out a started stay
"""

from __future__ import annotations

from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from resortly.api.rbac import get_actor, require_role
from resortly.domain import lifecycle
from resortly.domain.availability import (
    booked_nights,
    check_room_available,
    get_booked_intervals,
    require_bookable_room,
)
from resortly.domain.booking import parse_uuid, validate_booking_request
from resortly.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ReservationError,
    ReservationValidationError,
)
from resortly.domain.lifecycle import Actor
from resortly.domain.pricing import quote_stay
from resortly.infra.db import txn
from resortly.infra.time import utc_today
from resortly.observability.correlation import get_correlation_id
from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context


class CreateReservationRequest(BaseModel):
    """Request body for booking a room."""

    model_config = ConfigDict(extra="forbid")

    room_id: str
    start_date: date
    end_date: date


class UpdateStatusRequest(BaseModel):
    """Owner decision on a pending reservation."""

    status: str


router = APIRouter(prefix="/reservations", tags=["reservations"])

logger = get_logger(__name__)

# booked_nights covers [today, today + horizon); booked_dates stays complete.
BOOKED_NIGHTS_HORIZON_DAYS = 366


def _to_http_error(exc: ReservationError, *, transition_status: int = 409) -> HTTPException:
    """Translate a domain error into the HTTP status of its family.

    transition_status lets cancel/complete report a disallowed transition
    as a bad request rather than a conflict.
    """
    if isinstance(exc, InvalidTransitionError):
        status_code = transition_status
    elif isinstance(exc, ReservationValidationError):
        status_code = 400
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ForbiddenError):
        status_code = 403
    elif isinstance(exc, ConflictError):
        status_code = 409
    else:
        status_code = 500

    logger.info(
        "reservation request rejected",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                error=type(exc).__name__,
                status_code=status_code,
            )
        },
    )
    return HTTPException(status_code=status_code, detail=str(exc))


def _check_availability(room_id: str, start_date: date, end_date: date) -> dict:
    with txn() as cur:
        room = require_bookable_room(cur, room_id)
        quote = quote_stay(room.nightly_rate, start_date, end_date)
        available = check_room_available(
            cur, room_id=room.id, start_date=start_date, end_date=end_date
        )
    return {"available": available, "booking_details": quote.to_dict()}


def _booked_dates(room_id: str) -> dict:
    with txn() as cur:
        intervals = get_booked_intervals(cur, room_id)
    today = utc_today()
    nights = booked_nights(
        intervals,
        window_start=today,
        window_end=today + timedelta(days=BOOKED_NIGHTS_HORIZON_DAYS),
    )
    return {
        "booked_dates": [interval.to_dict() for interval in intervals],
        "booked_nights": [night.isoformat() for night in nights],
    }


# ── Public ───────────────────────────────────────────────────────────────────


@router.get("/availability/{room_id}")
def check_availability(
    room_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> dict:
    """Check whether a room is free for [start_date, end_date) and quote the stay.

    Returns:
        {"available": bool, "booking_details": {"nights", "nightly_rate", "total_price"}}
    """
    try:
        room_id = parse_uuid(room_id, field="room ID")
        return _check_availability(room_id, start_date, end_date)
    except ReservationError as exc:
        raise _to_http_error(exc) from None


@router.get("/booked-dates/{room_id}")
def list_booked_dates(room_id: str) -> dict:
    """Occupied intervals for a room, plus the booked nights of the coming year."""
    try:
        room_id = parse_uuid(room_id, field="room ID")
        return _booked_dates(room_id)
    except ReservationError as exc:
        raise _to_http_error(exc) from None


# ── Authenticated ────────────────────────────────────────────────────────────


@router.post("", status_code=201)
def create_reservation(
    body: CreateReservationRequest,
    actor: Actor = Depends(require_role("customer")),
) -> dict:
    """Book a room for the calling customer.

    Returns:
        201 with the pending reservation.
        400 for invalid dates or room id, 404 if the room is gone,
        409 if the room is already occupied.
    """
    try:
        request = validate_booking_request(
            customer_id=actor.user_id,
            room_id=body.room_id,
            start_date=body.start_date,
            end_date=body.end_date,
        )
        reservation = lifecycle.create_reservation(request)
    except ReservationError as exc:
        raise _to_http_error(exc) from None

    return {"reservation": reservation.to_dict()}


@router.get("")
def list_reservations(
    status: str | None = Query(None),
    actor: Actor = Depends(get_actor),
) -> dict:
    """Reservations visible to the caller.

    Owners see bookings for rooms in their resorts; customers see their own.
    """
    try:
        reservations = lifecycle.list_reservations_for_actor(actor, status=status)
    except ReservationError as exc:
        raise _to_http_error(exc) from None

    return {"reservations": [r.to_dict() for r in reservations]}


@router.get("/{reservation_id}")
def get_reservation(reservation_id: str, actor: Actor = Depends(get_actor)) -> dict:
    try:
        reservation_id = parse_uuid(reservation_id, field="reservation ID")
        reservation = lifecycle.get_reservation_for_actor(reservation_id, actor)
    except ReservationError as exc:
        raise _to_http_error(exc) from None

    return {"reservation": reservation.to_dict()}


@router.put("/{reservation_id}/status")
def update_reservation_status(
    reservation_id: str,
    body: UpdateStatusRequest,
    actor: Actor = Depends(get_actor),
) -> dict:
    """Owner approves or rejects a pending reservation.

    Approval re-checks the room against other occupying reservations;
    a conflict there, or a status that moved on, is a 409.
    """
    try:
        reservation_id = parse_uuid(reservation_id, field="reservation ID")
        reservation = lifecycle.update_reservation_status(
            reservation_id, actor, body.status
        )
    except ReservationError as exc:
        raise _to_http_error(exc) from None

    return {"reservation": reservation.to_dict()}


@router.delete("/{reservation_id}")
def cancel_reservation(reservation_id: str, actor: Actor = Depends(get_actor)) -> dict:
    """Cancel a reservation (customer while pending, owner while pending or approved)."""
    try:
        reservation_id = parse_uuid(reservation_id, field="reservation ID")
        reservation = lifecycle.cancel_reservation(reservation_id, actor)
    except ReservationError as exc:
        raise _to_http_error(exc, transition_status=400) from None

    return {"reservation": reservation.to_dict()}


@router.put("/{reservation_id}/complete")
def complete_reservation(reservation_id: str, actor: Actor = Depends(get_actor)) -> dict:
    """Owner marks an approved, already-started stay as completed."""
    try:
        reservation_id = parse_uuid(reservation_id, field="reservation ID")
        reservation = lifecycle.complete_reservation(reservation_id, actor)
    except ReservationError as exc:
        raise _to_http_error(exc, transition_status=400) from None

    return {"reservation": reservation.to_dict()}
