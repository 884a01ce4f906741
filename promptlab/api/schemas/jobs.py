"""Request and response bodies for the job endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..jobs.models import CamelModel, JobRecord


class CreateJobRequest(CamelModel):
    """``POST /jobs`` body.

    Required fields are declared optional so that a missing value reaches the
    service and is reported with the same message as an empty one.
    """

    prompt: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    template: Optional[str] = None
    input_data: Optional[Any] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    metrics: Optional[List[str]] = None


class CancelResponse(CamelModel):
    message: str = "Job cancelled successfully"
    job: JobRecord


class RetryResponse(CamelModel):
    message: str = "Job retry created successfully"
    original_job_id: str
    new_job: JobRecord


class DiffResponse(CamelModel):
    base_job: JobRecord
    compare_job: JobRecord


class ErrorResponse(CamelModel):
    error: str


class HealthResponse(CamelModel):
    status: str
    timestamp: str
    version: str
    dependencies: Dict[str, str]
    providers: Dict[str, Dict[str, Any]]


class MetricInfo(CamelModel):
    id: str
    name: str
    category: str
    description: str
    is_default: bool


class MetricCatalogResponse(CamelModel):
    """Metric ids accepted in ``POST /jobs`` ``metrics``."""

    metrics: List[MetricInfo]
    total: int
    defaults: int
    categories: List[str]
