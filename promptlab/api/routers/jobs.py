"""Job management endpoints."""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ..deps.providers import get_job_service
from ..jobs.models import JobRecord, JobSummary
from ..schemas.jobs import (
    CancelResponse,
    CreateJobRequest,
    DiffResponse,
    ErrorResponse,
    RetryResponse,
)
from ..services.job_service import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])

_NOT_FOUND = {404: {"model": ErrorResponse}}
_BAD_REQUEST = {400: {"model": ErrorResponse}}


@router.post(
    "",
    status_code=202,
    response_model=JobRecord,
    responses={**_BAD_REQUEST, 503: {"model": ErrorResponse}},
)
async def create_job(
    body: CreateJobRequest,
    service: JobService = Depends(get_job_service),
) -> JobRecord:
    return await service.create_job(body)


@router.get("", response_model=List[JobSummary], responses=_BAD_REQUEST)
async def list_jobs(
    limit: int = 20,
    offset: int = 0,
    provider: Optional[str] = None,
    status: Optional[str] = None,
    since: Optional[str] = None,
    service: JobService = Depends(get_job_service),
) -> List[JobSummary]:
    return await service.list_jobs(
        limit=limit, offset=offset, provider=provider, status=status, since=since
    )


@router.get("/{job_id}", response_model=JobRecord, responses=_NOT_FOUND)
async def get_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> JobRecord:
    return await service.get_job(job_id)


@router.get("/{job_id}/stream", response_model=None, responses=_NOT_FOUND)
async def stream_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
):
    """Stream a job's output as server-sent events.

    A job that already reached a terminal state is returned as plain JSON and
    the provider is not contacted again.
    """
    job = await service.get_job(job_id)
    if job.status.is_terminal:
        return JSONResponse(job.model_dump(mode="json", by_alias=True))

    async def _generate():
        async for event in service.stream_job(job):
            yield event.to_sse()

    return EventSourceResponse(_generate())


@router.put(
    "/{job_id}/cancel",
    response_model=CancelResponse,
    responses={**_BAD_REQUEST, **_NOT_FOUND},
)
async def cancel_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> CancelResponse:
    job = await service.cancel_job(job_id)
    return CancelResponse(job=job)


@router.post(
    "/{job_id}/retry",
    status_code=201,
    response_model=RetryResponse,
    responses=_NOT_FOUND,
)
async def retry_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> RetryResponse:
    new_job, original_id = await service.retry_job(job_id)
    return RetryResponse(original_job_id=original_id, new_job=new_job)


@router.delete("/{job_id}", status_code=204, response_class=Response, responses=_NOT_FOUND)
async def delete_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> Response:
    await service.delete_job(job_id)
    return Response(status_code=204)


@router.get("/{job_id}/diff", response_model=DiffResponse, responses=_NOT_FOUND)
async def diff_jobs(
    job_id: str,
    other_id: Optional[str] = Query(default=None, alias="otherId"),
    service: JobService = Depends(get_job_service),
) -> DiffResponse:
    base, compare = await service.diff_jobs(job_id, other_id)
    return DiffResponse(base_job=base, compare_job=compare)
