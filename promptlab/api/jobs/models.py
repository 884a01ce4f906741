"""Job data models."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed, JobStatus.cancelled})
ACTIVE_STATUSES = (JobStatus.pending, JobStatus.running)

CANCELLED_BY_USER = "Job cancelled by user"
CANCELLED_BY_SHUTDOWN = "Job cancelled by server shutdown"


class JobRecord(CamelModel):
    """Persistent representation of one evaluation request and its outcome."""

    id: str
    prompt: str
    template: Optional[str] = None
    input_data: Optional[Any] = None
    provider: str
    model: str
    status: JobStatus = JobStatus.pending
    result: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    tokens_used: Optional[int] = None
    cost_usd: Optional[float] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    selected_metrics: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime


class NewJob(CamelModel):
    """Request payload for a job about to be inserted as ``pending``."""

    prompt: str
    template: Optional[str] = None
    input_data: Optional[Any] = None
    provider: str
    model: str
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    selected_metrics: Optional[List[str]] = None

    @classmethod
    def clone_of(cls, job: JobRecord) -> "NewJob":
        """Request parameters of *job*, for retries."""
        return cls(**{name: getattr(job, name) for name in cls.model_fields})


class JobSummary(CamelModel):
    """List-view projection of a job (no prompt or full result)."""

    id: str
    status: JobStatus
    created_at: datetime
    provider: str
    model: str
    cost_usd: Optional[float] = None
    avg_score: Optional[float] = None
    result_snippet: Optional[str] = None


class ListJobsOptions(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    provider: Optional[str] = None
    status: Optional[JobStatus] = None
    since: Optional[datetime] = None


class ScorePoint(CamelModel):
    """Mean ``avgScore`` of the jobs created on one UTC day."""

    date: str
    avg_score: float


class ModelCost(CamelModel):
    model: str
    total_cost: float


class DashboardStats(CamelModel):
    """Aggregates over the jobs created inside a trailing window."""

    score_history: List[ScorePoint]
    cost_by_model: List[ModelCost]
