"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from resortly.api.routes import reservations

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(reservations.router)
