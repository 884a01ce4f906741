"""Dependency injection providers."""
from .context import AppContext, init_context
from .providers import get_context, get_job_service, get_settings

__all__ = [
    "AppContext",
    "get_context",
    "get_job_service",
    "get_settings",
    "init_context",
]
