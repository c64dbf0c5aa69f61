"""Rooms repository - read-only access to the room/resort collaborator tables.

The reservation engine never writes rooms; it reads price, existence and the
owning resort's owner.
"""

from __future__ import annotations

from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

from resortly.infra.db import fetchone


@dataclass(frozen=True)
class RoomRecord:
    """Room as seen by the reservation engine."""

    id: str
    resort_id: str
    owner_id: str
    nightly_rate: int
    capacity: int
    deleted: bool


def get_room(cur: PgCursor, room_id: str, *, lock: bool = False) -> RoomRecord | None:
    """Fetch a room with its owning resort's owner.

    A room is reported as deleted when either the room or its resort carries
    the tombstone flag.

    Args:
        cur: Database cursor.
        room_id: Room UUID.
        lock: If True, locks the room row (FOR UPDATE OF r) for the rest of
            the transaction. Used to serialise check-and-write per room.

    Returns:
        RoomRecord, or None if no such room exists.
    """
    suffix = " FOR UPDATE OF r" if lock else ""
    row = fetchone(
        cur,
        f"""
        SELECT r.id, r.resort_id, s.owner_id, r.nightly_rate, r.capacity,
               (r.deleted OR s.deleted)
        FROM rooms r
        JOIN resorts s ON s.id = r.resort_id
        WHERE r.id = %s
        {suffix}
        """,
        (room_id,),
    )
    if row is None:
        return None

    return RoomRecord(
        id=str(row[0]),
        resort_id=str(row[1]),
        owner_id=str(row[2]),
        nightly_rate=row[3],
        capacity=row[4],
        deleted=bool(row[5]),
    )
