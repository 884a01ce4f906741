"""Service layer between routers and the job engine."""
from .job_service import JobService

__all__ = ["JobService"]
