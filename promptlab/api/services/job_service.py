"""Job operations behind the HTTP surface: lifecycle, comparison and aggregate views."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from ...evaluation.text_metrics import MetricsCollaborator
from ...providers.registry import ProviderRegistry
from ..errors import (
    JobNotFoundError,
    JobPolicyError,
    JobValidationError,
    ProviderUnavailableError,
)
from ..jobs.models import (
    ACTIVE_STATUSES,
    CANCELLED_BY_USER,
    DashboardStats,
    JobRecord,
    JobStatus,
    JobSummary,
    ListJobsOptions,
    NewJob,
)
from ..jobs.runner import JobRunner, StreamEvent
from ..jobs.store import JobStore
from ..schemas.jobs import CreateJobRequest

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


class JobService:
    """Validates requests and applies state-machine policy on top of the store.

    Creation never contacts a provider; execution starts when a client opens
    the job's stream.
    """

    def __init__(
        self,
        store: JobStore,
        registry: ProviderRegistry,
        metrics: MetricsCollaborator,
        runner: JobRunner,
        *,
        max_prompt_chars: int = 50_000,
    ) -> None:
        self.store = store
        self.registry = registry
        self.metrics = metrics
        self.runner = runner
        self.max_prompt_chars = max_prompt_chars

    # ── Create ───────────────────────────────────────────────────────

    async def create_job(self, req: CreateJobRequest) -> JobRecord:
        prompt = self._require_text("prompt", req.prompt)
        if len(prompt) > self.max_prompt_chars:
            raise JobValidationError(
                f"prompt exceeds maximum length of {self.max_prompt_chars} characters"
            )
        provider = self._require_text("provider", req.provider)
        model = self._require_text("model", req.model)
        if req.temperature is not None and not 0 <= req.temperature <= 2:
            raise JobValidationError("temperature must be between 0 and 2")
        if req.top_p is not None and not 0 <= req.top_p <= 1:
            raise JobValidationError("topP must be between 0 and 1")
        if req.max_tokens is not None and req.max_tokens <= 0:
            raise JobValidationError("maxTokens must be a positive integer")
        if req.metrics is not None:
            unknown = [m for m in req.metrics if m not in self.metrics.supported()]
            if unknown:
                raise JobValidationError(f"Unknown metrics: {', '.join(unknown)}")
        self.validate_provider(provider, model)

        job = await self.store.create_job(
            NewJob(
                prompt=prompt,
                template=req.template,
                input_data=req.input_data,
                provider=provider,
                model=model,
                temperature=req.temperature,
                top_p=req.top_p,
                max_tokens=req.max_tokens,
                selected_metrics=req.metrics,
            )
        )
        logger.info("Job %s created (provider=%s model=%s)", job.id, provider, model)
        return job

    def validate_provider(self, provider: str, model: str) -> None:
        """Check name, model support and credential, in that order."""
        capability = self.registry.resolve(provider)
        if capability is None:
            raise JobValidationError(f"Unknown provider: {provider}")
        if not capability.supports(model):
            raise JobValidationError(
                f"Model '{model}' is not supported by provider '{provider}'"
            )
        if not capability.has_credentials():
            raise ProviderUnavailableError(
                f"Provider '{provider}' is not configured: missing API key"
            )

    @staticmethod
    def _require_text(field: str, value: Optional[str]) -> str:
        if value is None or not value.strip():
            raise JobValidationError(f"{field} is required and must be a non-empty string")
        return value

    # ── Read ─────────────────────────────────────────────────────────

    async def get_job(self, job_id: str) -> JobRecord:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError("Job not found")
        return job

    async def list_jobs(
        self,
        limit: int = 20,
        offset: int = 0,
        provider: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[str] = None,
    ) -> List[JobSummary]:
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise JobValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
        if offset < 0:
            raise JobValidationError("offset must be a non-negative integer")
        parsed_status = None
        if status:
            try:
                parsed_status = JobStatus(status)
            except ValueError:
                allowed = ", ".join(s.value for s in JobStatus)
                raise JobValidationError(f"status must be one of: {allowed}") from None
        options = ListJobsOptions(
            limit=limit,
            offset=offset,
            provider=provider or None,
            status=parsed_status,
            since=_parse_since(since),
        )
        return await self.store.list_jobs(options)

    def stream_job(self, job: JobRecord) -> AsyncGenerator[StreamEvent, None]:
        return self.runner.stream(job)

    # ── Cancel / Retry / Delete ──────────────────────────────────────

    async def cancel_job(self, job_id: str) -> JobRecord:
        job = await self.get_job(job_id)
        if job.status not in ACTIVE_STATUSES:
            raise JobPolicyError(f"Cannot cancel job with status {job.status.value}")
        cancelled = await self.store.update_job(
            job_id,
            expected=ACTIVE_STATUSES,
            status=JobStatus.cancelled,
            error_message=CANCELLED_BY_USER,
        )
        if cancelled is None:
            # Finished (or was deleted) between the read and the write.
            current = await self.get_job(job_id)
            raise JobPolicyError(f"Cannot cancel job with status {current.status.value}")
        self.runner.signal_cancel(job_id, CANCELLED_BY_USER)
        logger.info("Job %s cancelled by user (was %s)", job_id, job.status.value)
        return cancelled

    async def retry_job(self, job_id: str) -> Tuple[JobRecord, str]:
        """Clone *job_id*'s request into a new pending job."""
        original = await self.get_job(job_id)
        job = await self.store.create_job(NewJob.clone_of(original))
        logger.info("Job %s created as retry of %s", job.id, original.id)
        return job, original.id

    async def delete_job(self, job_id: str) -> None:
        await self.get_job(job_id)
        self.runner.signal_cancel(job_id)
        if not await self.store.delete_job(job_id):
            raise JobNotFoundError("Job not found")
        logger.info("Job %s deleted", job_id)

    # ── Diff ─────────────────────────────────────────────────────────

    async def diff_jobs(
        self, job_id: str, other_id: Optional[str] = None
    ) -> Tuple[JobRecord, JobRecord]:
        """Resolve ``(base, compare)``; compare defaults to the previous job."""
        base = await self.store.get_job(job_id)
        if base is None:
            raise JobNotFoundError("Base job not found")
        if other_id:
            compare = await self.store.get_job(other_id)
            if compare is None:
                raise JobNotFoundError("Compare job not found")
        else:
            compare = await self.store.get_previous_job(job_id)
            if compare is None:
                raise JobNotFoundError("No previous job found to compare with")
        return base, compare


    # ── Read views ───────────────────────────────────────────────────

    async def dashboard_stats(self, days: int = 30) -> DashboardStats:
        """Score history and cost per model over the trailing *days* days."""
        if days < 1:
            raise JobValidationError("Invalid 'days' parameter. Must be a positive integer.")
        since = datetime.now(timezone.utc) - timedelta(days=days)
        return await self.store.dashboard_stats(since)

    def metric_catalog(self) -> List[Dict[str, Any]]:
        return self.metrics.catalog()


def _parse_since(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 timestamp, or None when absent or unparseable."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparseable since=%r", value)
        return None
