"""Reservations repository - persistence for reservation records.

Uses raw SQL with psycopg2 (no ORM). Status writes are compare-and-swap:
an UPDATE only applies when the row still holds the expected status.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

# Columns read for every reservation, joined with the owning resort's owner.
_SELECT_RESERVATION = """
    SELECT res.id, res.customer_id, res.room_id, s.owner_id,
           res.start_date, res.end_date, res.total_price, res.status,
           res.deleted, res.created_at, res.updated_at
    FROM reservations res
    JOIN rooms r ON r.id = res.room_id
    JOIN resorts s ON s.id = r.resort_id
"""

_LIST_LIMIT = 200


@dataclass(frozen=True)
class ReservationRecord:
    id: str
    customer_id: str
    room_id: str
    owner_id: str
    start_date: date
    end_date: date
    total_price: int
    status: str
    deleted: bool
    created_at: datetime
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise for API responses (owner_id is internal)."""
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "room_id": self.room_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_price": self.total_price,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def _row_to_reservation(row: tuple) -> ReservationRecord:
    return ReservationRecord(
        id=str(row[0]),
        customer_id=str(row[1]),
        room_id=str(row[2]),
        owner_id=str(row[3]),
        start_date=row[4],
        end_date=row[5],
        total_price=row[6],
        status=row[7],
        deleted=bool(row[8]),
        created_at=row[9],
        updated_at=row[10],
    )


def insert_reservation(
    cur: PgCursor,
    *,
    customer_id: str,
    room_id: str,
    owner_id: str,
    start_date: date,
    end_date: date,
    total_price: int,
) -> ReservationRecord:
    """Insert a new reservation in status 'pending'.

    Args:
        cur: Database cursor (within the transaction holding the room lock).
        customer_id: Booking customer's user id.
        room_id: Room UUID.
        owner_id: Owner of the room's resort (not stored, echoed on the record).
        start_date: Check-in date (inclusive).
        end_date: Check-out date (exclusive).
        total_price: Price fixed at creation, minor currency units.

    Returns:
        The inserted ReservationRecord.
    """
    cur.execute(
        """
        INSERT INTO reservations (
            customer_id, room_id, start_date, end_date, total_price, status
        )
        VALUES (%s, %s, %s, %s, %s, 'pending')
        RETURNING id, created_at
        """,
        (customer_id, room_id, start_date, end_date, total_price),
    )
    row = cur.fetchone()

    return ReservationRecord(
        id=str(row[0]),
        customer_id=customer_id,
        room_id=room_id,
        owner_id=owner_id,
        start_date=start_date,
        end_date=end_date,
        total_price=total_price,
        status="pending",
        deleted=False,
        created_at=row[1],
    )


def get_reservation(cur: PgCursor, reservation_id: str) -> ReservationRecord | None:
    """Fetch a reservation by id, joined with its resort owner.

    Returns:
        ReservationRecord, or None if absent or soft-deleted.
    """
    cur.execute(
        _SELECT_RESERVATION + " WHERE res.id = %s AND NOT res.deleted",
        (reservation_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_reservation(row)


def compare_and_set_status(
    cur: PgCursor,
    reservation: ReservationRecord,
    *,
    expected_status: str,
    new_status: str,
) -> ReservationRecord | None:
    """Move a reservation to new_status only if it is still expected_status.

    Returns:
        The updated record, or None when the row's status had already
        changed (the caller lost the race).
    """
    cur.execute(
        """
        UPDATE reservations
        SET status = %s, updated_at = now()
        WHERE id = %s AND status = %s AND NOT deleted
        RETURNING updated_at
        """,
        (new_status, reservation.id, expected_status),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return replace(reservation, status=new_status, updated_at=row[0])


def list_reservations_for_customer(
    cur: PgCursor,
    customer_id: str,
    *,
    status: str | None = None,
) -> list[ReservationRecord]:
    """List a customer's own reservations, newest check-in first."""
    conditions = ["res.customer_id = %s", "NOT res.deleted"]
    params: list = [customer_id]
    if status:
        conditions.append("res.status = %s")
        params.append(status)

    cur.execute(
        _SELECT_RESERVATION
        + f" WHERE {' AND '.join(conditions)} ORDER BY res.start_date DESC LIMIT {_LIST_LIMIT}",
        params,
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]


def list_reservations_for_owner(
    cur: PgCursor,
    owner_id: str,
    *,
    status: str | None = None,
) -> list[ReservationRecord]:
    """List reservations for rooms in resorts owned by owner_id."""
    conditions = ["s.owner_id = %s", "NOT res.deleted"]
    params: list = [owner_id]
    if status:
        conditions.append("res.status = %s")
        params.append(status)

    cur.execute(
        _SELECT_RESERVATION
        + f" WHERE {' AND '.join(conditions)} ORDER BY res.start_date DESC LIMIT {_LIST_LIMIT}",
        params,
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]


def list_ids_due_for_completion(cur: PgCursor, *, as_of: date) -> list[str]:
    """Ids of approved reservations whose checkout date is on or before as_of."""
    cur.execute(
        """
        SELECT id FROM reservations
        WHERE status = 'approved'
          AND end_date <= %s
          AND NOT deleted
        ORDER BY end_date, id
        """,
        (as_of,),
    )
    return [str(row[0]) for row in cur.fetchall()]


def set_status_if(
    cur: PgCursor,
    reservation_id: str,
    *,
    expected_status: str,
    new_status: str,
) -> bool:
    """Id-only compare-and-swap; True if this call changed the row."""
    cur.execute(
        """
        UPDATE reservations
        SET status = %s, updated_at = now()
        WHERE id = %s AND status = %s AND NOT deleted
        """,
        (new_status, reservation_id, expected_status),
    )
    return cur.rowcount == 1
