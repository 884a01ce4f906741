"""Shared test fixtures for the promptlab test suite."""
from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

import pytest

from promptlab.api.config import ApiSettings
from promptlab.api.deps.context import AppContext
from promptlab.api.jobs.models import NewJob
from promptlab.api.jobs.runner import JobRunner
from promptlab.api.jobs.store import JobStore
from promptlab.api.services.job_service import JobService
from promptlab.evaluation.text_metrics import TextMetrics
from promptlab.providers.base import (
    ProviderCapability,
    ProviderError,
    ProviderOptions,
    StreamChunk,
    Usage,
)
from promptlab.providers.registry import ProviderRegistry


# ── Provider fixtures ────────────────────────────────────────────────


class FakeProvider(ProviderCapability):
    """Scripted provider: yields ``chunks`` in order.

    ``gate`` (if given) is awaited right after chunk ``gate_after`` has been
    pulled, which lets a test act while the job is mid-stream.  ``fail_after``
    raises ``error`` instead of yielding that chunk index.
    """

    name = "fake"
    models = ("fake-small", "fake-large")

    def __init__(
        self,
        chunks: Sequence[str] = ("Hello", " world", "."),
        *,
        name: Optional[str] = None,
        api_key: Optional[str] = "test-key",
        usage: Optional[Usage] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
        gate_after: int = 0,
    ) -> None:
        super().__init__(api_key, base_url="http://fake.invalid")
        if name is not None:
            self.name = name
        self.chunks = list(chunks)
        self.usage = usage
        self.fail_after = fail_after
        self.error = error or ProviderError("upstream exploded", status_code=502)
        self.gate = gate
        self.gate_after = gate_after
        self.calls: List[ProviderOptions] = []
        self.closed = False

    async def stream(self, prompt, options, cancel_event=None):
        self.calls.append(options)
        try:
            for i, text in enumerate(self.chunks):
                if cancel_event is not None and cancel_event.is_set():
                    return
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                yield StreamChunk(content=text)
                if self.gate is not None and i == self.gate_after:
                    await self.gate.wait()
            if self.usage is not None:
                yield StreamChunk(usage=self.usage)
        finally:
            self.closed = True


@pytest.fixture
def make_provider():
    """The ``FakeProvider`` class, for tests that script their own provider."""
    return FakeProvider


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def registry(provider):
    """``fake`` has a credential, ``nokey`` does not."""
    return ProviderRegistry([provider, FakeProvider(name="nokey", api_key=None)])


# ── Engine fixtures ──────────────────────────────────────────────────


@pytest.fixture
async def store(tmp_path):
    s = JobStore(str(tmp_path / "jobs.db"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def metrics():
    return TextMetrics()


@pytest.fixture
def runner(store, registry, metrics):
    return JobRunner(store, registry, metrics)


@pytest.fixture
def service(store, registry, metrics, runner):
    return JobService(store, registry, metrics, runner)


@pytest.fixture
def make_job(store):
    """Insert a pending job directly through the store."""

    async def _make(prompt="Say hello", provider="fake", model="fake-small", **kw):
        return await store.create_job(NewJob(prompt=prompt, provider=provider, model=model, **kw))

    return _make


# ── API fixtures ─────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def settings(tmp_path):
    return ApiSettings(job_db_path=str(tmp_path / "jobs.db"))


@pytest.fixture
async def app(settings, store, registry, metrics, runner, service):
    """Test FastAPI app wired to the per-test store and fake providers."""
    from promptlab.api.main import create_app

    context = AppContext(
        settings=settings,
        store=store,
        registry=registry,
        metrics=metrics,
        runner=runner,
        service=service,
    )
    application = create_app(settings, context=context)
    yield application
    await runner.shutdown(grace_seconds=0.1)


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
