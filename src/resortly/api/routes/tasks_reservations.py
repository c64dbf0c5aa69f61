"""Worker routes for reservation housekeeping.

POST /tasks/reservations/auto-complete - completes approved stays whose
check-out date has passed. Triggered on a fixed interval by the scheduler;
only accepts requests with a valid scheduler OIDC token.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from resortly.api.task_auth import verify_task_auth
from resortly.domain.sweeper import sweep
from resortly.observability.correlation import get_correlation_id
from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/reservations", tags=["tasks"])

logger = get_logger(__name__)


@router.post("/auto-complete")
def auto_complete_task(request: Request) -> dict:
    """Run one auto-completion sweep.

    Returns:
        200 with {"completedCount", "skippedCount", "failed"}.
        401 if task auth fails.
    """
    correlation_id = get_correlation_id()

    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    logger.info(
        "auto-complete task received",
        extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
    )
    return sweep().to_dict()
