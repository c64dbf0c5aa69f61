"""Correlation ID propagation for request and sweep tracing."""

import uuid
from contextvars import ContextVar, Token

# Set per HTTP request by the factory middleware, or per sweep run.
correlation_id_var: ContextVar[str] = ContextVar("resortly_correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"

_MAX_INCOMING_LENGTH = 128


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def accept_correlation_id(incoming: str | None) -> str:
    """Reuse a caller-supplied correlation ID, or mint a new one.

    Oversized or blank values are replaced so they cannot bloat log lines.
    """
    if incoming:
        incoming = incoming.strip()
    if not incoming or len(incoming) > _MAX_INCOMING_LENGTH:
        return generate_correlation_id()
    return incoming


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    """Set correlation ID in context."""
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    """Reset correlation ID to previous value."""
    correlation_id_var.reset(token)
