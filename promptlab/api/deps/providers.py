"""Request-scoped accessors for FastAPI ``Depends()``."""
from __future__ import annotations

from functools import lru_cache

from fastapi import Request

from ..config import ApiSettings
from ..services.job_service import JobService
from .context import AppContext


@lru_cache
def get_settings() -> ApiSettings:
    return ApiSettings()


def get_context(request: Request) -> AppContext:
    """Return the context the lifespan stored on ``app.state``."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError("Application context not initialised")
    return context


def get_job_service(request: Request) -> JobService:
    return get_context(request).service
