"""Pydantic request/response schemas."""
from .jobs import (
    CancelResponse,
    CreateJobRequest,
    DiffResponse,
    ErrorResponse,
    HealthResponse,
    MetricCatalogResponse,
    MetricInfo,
    RetryResponse,
)

__all__ = [
    "CancelResponse",
    "CreateJobRequest",
    "DiffResponse",
    "ErrorResponse",
    "HealthResponse",
    "MetricCatalogResponse",
    "MetricInfo",
    "RetryResponse",
]
