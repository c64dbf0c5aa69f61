"""FastAPI application factory with role-based route mounting."""

import os
from typing import Literal

import psycopg2
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from resortly.observability.correlation import (
    CORRELATION_ID_HEADER,
    accept_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from resortly.observability.logging import get_logger
from resortly.observability.redaction import safe_log_context

from .routers import public, worker

AppRole = Literal["public", "worker"]

logger = get_logger(__name__)


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(
        title="Resortly",
        docs_url=None,
        redoc_url=None,
    )

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = accept_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    # Malformed bodies, query params and path params are plain 400s
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        logger.info(
            "request validation failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    path=request.url.path,
                    error_count=len(errors),
                )
            },
        )
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in errors]
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request", "fields": fields},
        )

    @app.exception_handler(psycopg2.Error)
    async def database_error_handler(request: Request, exc: psycopg2.Error) -> JSONResponse:
        logger.error(
            "database error",
            exc_info=exc,
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    path=request.url.path,
                    pgcode=getattr(exc, "pgcode", None),
                )
            },
        )
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    # Mount public routes (always)
    app.include_router(public.router)

    # Mount worker routes only for worker role
    if role == "worker":
        app.include_router(worker.router)

    return app
