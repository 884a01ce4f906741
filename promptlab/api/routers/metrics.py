"""Catalog of the metrics a job can select."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps.providers import get_job_service
from ..schemas.jobs import MetricCatalogResponse, MetricInfo
from ..services.job_service import JobService

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/available", response_model=MetricCatalogResponse)
async def available_metrics(
    service: JobService = Depends(get_job_service),
) -> MetricCatalogResponse:
    metrics = [MetricInfo(**entry) for entry in service.metric_catalog()]
    return MetricCatalogResponse(
        metrics=metrics,
        total=len(metrics),
        defaults=sum(1 for m in metrics if m.is_default),
        categories=sorted({m.category for m in metrics}),
    )
