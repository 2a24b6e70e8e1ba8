"""Structured error responses."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from .correlation import get_correlation_id
from ..core.errors import RelayError

log = structlog.get_logger()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into a structured 500 response."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            correlation_id = get_correlation_id()
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                correlation_id=correlation_id,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "An unexpected error occurred",
                    "type": "InternalServerError",
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render a relay validation error as a client error."""
    correlation_id = get_correlation_id()
    log.warning(
        "relay.client_error",
        error_type=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "type": exc.__class__.__name__,
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RelayError, relay_error_handler)
