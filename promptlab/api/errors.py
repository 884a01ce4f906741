"""Custom exceptions and FastAPI error handler registration."""
from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ── Custom Exceptions ────────────────────────────────────────────────


class JobValidationError(Exception):
    """Request payload or query parameters are invalid."""


class JobPolicyError(Exception):
    """Operation is not allowed in the job's current state."""


class JobNotFoundError(Exception):
    """Requested job ID does not exist."""


class ProviderUnavailableError(Exception):
    """The resolved provider has no credential configured."""


# ── Error → HTTP mapping ────────────────────────────────────────────

_EXCEPTION_STATUS = {
    JobValidationError: 400,
    JobPolicyError: 400,
    JobNotFoundError: 404,
    ProviderUnavailableError: 503,
}


def error_body(message: str) -> dict:
    return {"error": message}


def _make_handler(status_code: int):
    """Create a handler that wraps an exception in an ``{"error": ...}`` body."""

    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=error_body(str(exc)))

    return _handler


def _describe_validation(exc: RequestValidationError) -> str:
    """First validation problem as ``field: message``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    msg = first.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {msg}" if loc else msg


def register_error_handlers(app: FastAPI) -> None:
    """Register custom exception handlers on the FastAPI app."""
    for exc_cls, status in _EXCEPTION_STATUS.items():
        app.add_exception_handler(exc_cls, _make_handler(status))

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=error_body(_describe_validation(exc)))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s: %s\n%s",
            request.method, request.url.path, exc, traceback.format_exc(),
        )
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
