"""Room availability - overlap detection on half-open date intervals.

Overlap formula:  (new_start < existing_end) AND (existing_start < new_end)
Strict inequality allows check-out day == check-in day (same-day turnover).

Which statuses block a room is a named policy (OCCUPYING_POLICIES), selected
by RESERVATION_OCCUPYING_POLICY and resolved in one place,
occupying_statuses(). The availability check and the booked-dates query both
go through it, so they always agree on what "booked" means.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from psycopg2.extensions import cursor as PgCursor

from resortly.domain.errors import RoomNotFoundError, RoomUnavailableError
from resortly.infra.db import fetchall
from resortly.infra.repositories.rooms_repository import RoomRecord, get_room
from resortly.infra.settings import get_reservation_settings
from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Completed stays keep occupying their dates: a manual completion happens as
# soon as the stay starts, while the guest is still in the room.
OCCUPYING_POLICIES: dict[str, tuple[str, ...]] = {
    "approved": ("approved", "completed"),
    "pending_or_approved": ("pending", "approved", "completed"),
}


class UnknownOccupyingPolicyError(ValueError):
    pass


@dataclass(frozen=True)
class BookedInterval:
    start_date: date
    end_date: date
    status: str

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "status": self.status,
        }


def occupying_statuses(policy: str | None = None) -> tuple[str, ...]:
    """Statuses that block a room's calendar under the given (or configured) policy.

    Raises:
        UnknownOccupyingPolicyError: If the policy name is not defined.
    """
    if policy is None:
        policy = get_reservation_settings().occupying_policy
    try:
        return OCCUPYING_POLICIES[policy]
    except KeyError:
        raise UnknownOccupyingPolicyError(
            f"Unknown occupying policy {policy!r}; expected one of {sorted(OCCUPYING_POLICIES)}"
        ) from None


def intervals_overlap(
    start_a: date,
    end_a: date,
    start_b: date,
    end_b: date,
) -> bool:
    """True if half-open intervals [start_a, end_a) and [start_b, end_b) share a night."""
    return start_a < end_b and start_b < end_a


def require_bookable_room(cur: PgCursor, room_id: str, *, lock: bool = False) -> RoomRecord:
    """Load a room, failing if it is missing or logically deleted.

    Raises:
        RoomNotFoundError: Room absent, deleted, or its resort deleted.
    """
    room = get_room(cur, room_id, lock=lock)
    if room is None or room.deleted:
        raise RoomNotFoundError(room_id)
    return room


def find_conflicting_reservation(
    cur: PgCursor,
    *,
    room_id: str,
    start_date: date,
    end_date: date,
    exclude_reservation_id: str | None = None,
    statuses: tuple[str, ...] | None = None,
) -> str | None:
    """Return the id of the first occupying reservation overlapping the interval.

    Args:
        cur: Database cursor (should be within a transaction).
        room_id: Room UUID.
        start_date: Requested check-in (inclusive).
        end_date: Requested check-out (exclusive).
        exclude_reservation_id: Reservation to ignore (re-validation on approve).
        statuses: Occupying statuses; defaults to the configured policy.

    Returns:
        Conflicting reservation id, or None if the interval is free.
    """
    if statuses is None:
        statuses = occupying_statuses()

    conditions = [
        "room_id = %s",
        "NOT deleted",
        "status = ANY(%s::reservation_status[])",
        "start_date < %s",  # existing start < requested end
        "end_date > %s",  # existing end > requested start
    ]
    params: list = [room_id, list(statuses), end_date, start_date]

    if exclude_reservation_id is not None:
        conditions.append("id != %s")
        params.append(exclude_reservation_id)

    cur.execute(
        f"""
        SELECT id, start_date, end_date
        FROM reservations
        WHERE {' AND '.join(conditions)}
        ORDER BY start_date
        LIMIT 1
        """,
        params,
    )
    row = cur.fetchone()
    if row is None:
        return None

    conflicting_id = str(row[0])
    logger.info(
        "room conflict detected",
        extra={
            "extra_fields": safe_log_context(
                room_id=room_id,
                requested_start=start_date,
                requested_end=end_date,
                conflicting_reservation_id=conflicting_id,
                existing_start=row[1],
                existing_end=row[2],
            )
        },
    )
    return conflicting_id


def check_room_available(
    cur: PgCursor,
    *,
    room_id: str,
    start_date: date,
    end_date: date,
    exclude_reservation_id: str | None = None,
    statuses: tuple[str, ...] | None = None,
) -> bool:
    """True if no occupying reservation for the room overlaps [start_date, end_date).

    The room must exist and not be deleted; that is a precondition reported
    as RoomNotFoundError, not as "unavailable".
    """
    require_bookable_room(cur, room_id)
    conflicting_id = find_conflicting_reservation(
        cur,
        room_id=room_id,
        start_date=start_date,
        end_date=end_date,
        exclude_reservation_id=exclude_reservation_id,
        statuses=statuses,
    )
    return conflicting_id is None


def assert_room_available(
    cur: PgCursor,
    *,
    room_id: str,
    start_date: date,
    end_date: date,
    exclude_reservation_id: str | None = None,
    statuses: tuple[str, ...] | None = None,
) -> None:
    """Raise RoomUnavailableError if the interval conflicts with an occupying reservation.

    Does not re-check room existence; callers hold the room already.
    """
    conflicting_id = find_conflicting_reservation(
        cur,
        room_id=room_id,
        start_date=start_date,
        end_date=end_date,
        exclude_reservation_id=exclude_reservation_id,
        statuses=statuses,
    )
    if conflicting_id is not None:
        raise RoomUnavailableError(
            room_id=room_id,
            start_date=start_date,
            end_date=end_date,
            conflicting_reservation_id=conflicting_id,
        )


def get_booked_intervals(
    cur: PgCursor,
    room_id: str,
    *,
    statuses: tuple[str, ...] | None = None,
) -> list[BookedInterval]:
    """All occupying intervals for a room, ordered by check-in.

    Raises:
        RoomNotFoundError: Room absent or deleted.
    """
    if statuses is None:
        statuses = occupying_statuses()

    require_bookable_room(cur, room_id)
    rows = fetchall(
        cur,
        """
        SELECT start_date, end_date, status
        FROM reservations
        WHERE room_id = %s
          AND NOT deleted
          AND status = ANY(%s::reservation_status[])
        ORDER BY start_date
        """,
        (room_id, list(statuses)),
    )
    return [
        BookedInterval(start_date=row[0], end_date=row[1], status=row[2])
        for row in rows
    ]


def booked_nights(
    intervals: list[BookedInterval],
    *,
    window_start: date | None = None,
    window_end: date | None = None,
) -> list[date]:
    """Expand intervals into the individual occupied nights.

    The check-out day is not a night of the stay. When given, the window
    [window_start, window_end) clips the expansion. Result is sorted and
    de-duplicated.
    """
    nights: set[date] = set()
    for interval in intervals:
        current = interval.start_date
        if window_start is not None and current < window_start:
            current = window_start
        stop = interval.end_date
        if window_end is not None and stop > window_end:
            stop = window_end
        while current < stop:
            nights.add(current)
            current += timedelta(days=1)
    return sorted(nights)
