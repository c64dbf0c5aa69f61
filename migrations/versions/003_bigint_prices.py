"""Widen room rates and reservation totals to bigint.

Revision ID: 003_bigint_prices
Revises: 002_no_room_overlap_constraint
Create Date: 2026-10-18
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "003_bigint_prices"
down_revision = "002_no_room_overlap_constraint"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parent.parent / "sql" / "003_bigint_prices.sql"


def upgrade() -> None:
    sql = _SQL_FILE.read_text()
    op.execute(sql)


def downgrade() -> None:
    # Fails if any stored price no longer fits in integer.
    op.execute("ALTER TABLE reservations ALTER COLUMN total_price TYPE integer")
    op.execute("ALTER TABLE rooms ALTER COLUMN nightly_rate TYPE integer")
