"""Job persistence and streaming execution."""
from .models import (
    DashboardStats,
    JobRecord,
    JobStatus,
    JobSummary,
    ListJobsOptions,
    ModelCost,
    NewJob,
    ScorePoint,
)
from .runner import JobRunner, StreamEvent
from .store import JobStore

__all__ = [
    "DashboardStats",
    "JobRecord",
    "JobRunner",
    "JobStatus",
    "JobStore",
    "JobSummary",
    "ListJobsOptions",
    "ModelCost",
    "NewJob",
    "ScorePoint",
    "StreamEvent",
]
