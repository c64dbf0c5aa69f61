"""Auto-completion sweep.

Moves approved reservations whose stay has fully elapsed (check-out date
reached) to 'completed'. Meant to be triggered on a fixed interval by an
external scheduler, through the worker route or scripts/run_auto_complete.py.

Each candidate is handled in its own short transaction:
1. SELECT ... FOR UPDATE SKIP LOCKED on the reservation row
   - locked by a concurrent owner action, or already gone: skipped
2. Re-check status and end date (a concurrent cancel/complete: skipped)
3. Compare-and-swap approved -> completed

One failing candidate is logged and reported; the batch continues.
Running twice with the same `now` completes nothing the second time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from resortly.domain.lifecycle import SYSTEM, TRANSITIONS, Transition
from resortly.infra.db import for_update, txn
from resortly.infra.repositories.reservations_repository import (
    list_ids_due_for_completion,
    set_status_if,
)
from resortly.infra.time import as_calendar_date, utc_today
from resortly.observability.correlation import get_correlation_id
from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context

logger = get_logger(__name__)

SWEEP_TRANSITION: Transition = next(
    t for t in TRANSITIONS if t.event == "complete" and SYSTEM in t.parties
)


@dataclass
class SweepResult:
    completed: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "completedCount": self.completed,
            "skippedCount": self.skipped,
            "failed": list(self.failed),
        }


def _complete_if_elapsed(reservation_id: str, as_of: date) -> bool:
    """Complete one reservation. Returns False when it was skipped."""
    with txn() as cur:
        row = for_update(
            cur,
            "SELECT status, end_date FROM reservations WHERE id = %s AND NOT deleted",
            (reservation_id,),
            skip_locked=True,
        )
        if row is None:
            return False

        status, end_date = row
        if status != SWEEP_TRANSITION.from_status or end_date > as_of:
            return False

        return set_status_if(
            cur,
            reservation_id,
            expected_status=SWEEP_TRANSITION.from_status,
            new_status=SWEEP_TRANSITION.to_status,
        )


def sweep(now: date | datetime | None = None) -> SweepResult:
    """Complete every approved reservation whose end_date is on or before now.

    Args:
        now: Point in time to sweep at; defaults to the current UTC date.

    Returns:
        SweepResult with the number of reservations transitioned, the number
        skipped because a concurrent actor got there first, and failed ids.
    """
    as_of = as_calendar_date(now) if now is not None else utc_today()

    with txn() as cur:
        candidate_ids = list_ids_due_for_completion(cur, as_of=as_of)

    result = SweepResult()
    for reservation_id in candidate_ids:
        try:
            if _complete_if_elapsed(reservation_id, as_of):
                result.completed += 1
            else:
                result.skipped += 1
        except Exception:
            logger.exception(
                "auto-complete failed for reservation",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=get_correlation_id(),
                        reservation_id=reservation_id,
                    )
                },
            )
            result.failed.append(reservation_id)

    logger.info(
        "auto-complete sweep finished",
        extra={
            "extra_fields": safe_log_context(
                as_of=as_of,
                candidates=len(candidate_ids),
                completed=result.completed,
                skipped=result.skipped,
                failed=len(result.failed),
            )
        },
    )
    return result
