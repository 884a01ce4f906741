"""Aggregate views over recent jobs."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps.providers import get_job_service
from ..jobs.models import DashboardStats
from ..schemas.jobs import ErrorResponse
from ..services.job_service import JobService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats, responses={400: {"model": ErrorResponse}})
async def dashboard_stats(
    days: int = 30,
    service: JobService = Depends(get_job_service),
) -> DashboardStats:
    """Per-day mean ``avgScore`` and total cost per model for the last *days* days."""
    return await service.dashboard_stats(days)
