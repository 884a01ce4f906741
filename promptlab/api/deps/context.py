"""Application context built once at startup and shared by every request."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ...evaluation.text_metrics import MetricsCollaborator, TextMetrics
from ...providers.registry import ProviderRegistry
from ..config import ApiSettings, ProviderSettings
from ..jobs.runner import JobRunner
from ..jobs.store import JobStore
from ..services.job_service import JobService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Ready-to-use handles; constructed by :func:`init_context`."""

    settings: ApiSettings
    store: JobStore
    registry: ProviderRegistry
    metrics: MetricsCollaborator
    runner: JobRunner
    service: JobService

    async def close(self) -> None:
        """Stop in-flight jobs, then release the store."""
        await self.runner.shutdown(self.settings.shutdown_grace_seconds)
        await self.store.close()


async def init_context(
    settings: ApiSettings,
    *,
    providers: Optional[ProviderSettings] = None,
    registry: Optional[ProviderRegistry] = None,
    metrics: Optional[MetricsCollaborator] = None,
) -> AppContext:
    """Open the store and wire the engine together.

    Raises whatever the store raises when the database cannot be opened, so
    startup fails instead of the first request.
    """
    store = JobStore(settings.job_db_path)
    await store.initialize()
    logger.info("Job store ready at %s", settings.job_db_path)

    if registry is None:
        providers = providers or ProviderSettings()
        registry = ProviderRegistry.with_builtins(
            providers.credentials(),
            base_urls=providers.base_urls(),
            connect_timeout=settings.provider_connect_timeout,
            read_timeout=settings.provider_read_timeout,
        )
    metrics = metrics or TextMetrics()
    runner = JobRunner(
        store, registry, metrics, cancel_poll_every=settings.cancel_poll_every
    )
    service = JobService(
        store, registry, metrics, runner, max_prompt_chars=settings.max_prompt_chars
    )
    return AppContext(
        settings=settings,
        store=store,
        registry=registry,
        metrics=metrics,
        runner=runner,
        service=service,
    )
