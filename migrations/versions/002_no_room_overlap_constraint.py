"""Exclusion constraint: no two occupying reservations share a room night.

Database-level layer under the application availability check; holds even
if two approvals race past the application check.

The constraint covers the 'approved' occupancy policy (approved and
completed). With RESERVATION_OCCUPYING_POLICY=pending_or_approved, pending
overlaps are prevented by the application check alone, since pending rows
must stay insertable while an owner reviews them.

Revision ID: 002_no_room_overlap_constraint
Revises: 001_initial_schema
Create Date: 2026-10-18
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_no_room_overlap_constraint"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parent.parent / "sql" / "002_no_room_overlap_constraint.sql"


def upgrade() -> None:
    sql = _SQL_FILE.read_text()
    op.execute(sql)


def downgrade() -> None:
    op.execute("ALTER TABLE reservations DROP CONSTRAINT IF EXISTS no_room_overlap")
    # btree_gist is kept: other indexes may depend on it.
