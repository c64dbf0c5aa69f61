"""Authentication for scheduler-triggered worker routes.

The auto-complete sweep is triggered by an external scheduler (Cloud
Scheduler / Cloud Tasks) that signs its requests with a Google OIDC token.
For local development, a shared secret header is accepted instead when
TASKS_OIDC_AUDIENCE is set to the local-dev audience.
"""

from __future__ import annotations

import hmac
import os

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context

logger = get_logger(__name__)

LOCAL_DEV_AUDIENCE = "resortly-tasks-local"
INTERNAL_SECRET_HEADER = "X-Internal-Task-Secret"


def extract_bearer_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):]


def verify_task_oidc(token: str) -> bool:
    """Verify a Google-signed OIDC token for the configured audience.

    Fail-closed: returns False when TASKS_OIDC_AUDIENCE is not set.
    When TASKS_OIDC_SERVICE_ACCOUNT is set, the token's email must match.
    """
    if not token:
        return False

    audience = os.environ.get("TASKS_OIDC_AUDIENCE")
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as e:
        logger.warning(
            "task OIDC token verification failed",
            extra={"extra_fields": safe_log_context(error=str(e))},
        )
        return False

    expected_email = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if expected_email and claims.get("email", "") != expected_email:
        logger.warning(
            "task OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(reason="service_account_mismatch")},
        )
        return False

    return True


def _local_secret_matches(request: Request) -> bool:
    internal_secret = os.environ.get("INTERNAL_TASK_SECRET", "")
    request_secret = request.headers.get(INTERNAL_SECRET_HEADER, "")
    return bool(internal_secret) and hmac.compare_digest(request_secret, internal_secret)


def verify_task_auth(request: Request) -> bool:
    """True if the request comes from the scheduler (or local dev secret)."""
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        if _local_secret_matches(request):
            return True

    token = extract_bearer_token(request)
    if not token:
        logger.warning(
            "task auth failed: missing Bearer token",
            extra={"extra_fields": safe_log_context(reason="missing_bearer_token")},
        )
        return False
    return verify_task_oidc(token)
