"""Streaming execution controller: drives providers and fans events out over SSE."""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional

from ...evaluation.text_metrics import MetricContext, MetricsCollaborator
from ...providers.base import ProviderError, ProviderOptions, Usage, categorize_error
from ...providers.registry import ProviderRegistry
from .accounting import compute_cost, resolve_usage, with_average_score
from .models import (
    ACTIVE_STATUSES,
    CANCELLED_BY_SHUTDOWN,
    CANCELLED_BY_USER,
    JobRecord,
    JobStatus,
)
from .store import JobStore

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Job was cancelled"


@dataclass(frozen=True)
class StreamEvent:
    """One event on a job stream.

    ``kind`` is ``token`` for output chunks and ``metrics``, ``error`` or
    ``cancelled`` for the single terminal event.
    """

    kind: str
    data: Dict[str, Any]

    @property
    def terminal(self) -> bool:
        return self.kind != "token"

    @classmethod
    def token(cls, text: str) -> "StreamEvent":
        return cls("token", {"token": text})

    @classmethod
    def metrics(cls, metrics: Dict[str, Any]) -> "StreamEvent":
        return cls("metrics", dict(metrics))

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls("error", {"error": message})

    @classmethod
    def cancelled(cls) -> "StreamEvent":
        return cls("cancelled", {"message": CANCELLED_MESSAGE})

    def to_sse(self) -> Dict[str, str]:
        """Shape expected by ``EventSourceResponse`` (tokens are unnamed events)."""
        payload = {"data": json.dumps(self.data)}
        if self.terminal:
            payload["event"] = self.kind
        return payload


@dataclass
class _Execution:
    """In-flight state of one job's execution."""

    job_id: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    cancel_reason: str = CANCELLED_BY_USER
    parts: List[str] = field(default_factory=list)
    subscribers: List[asyncio.Queue] = field(default_factory=list)
    outcome: Optional[StreamEvent] = None
    task: Optional[asyncio.Task] = None

    @property
    def output(self) -> str:
        return "".join(self.parts)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        if self.parts:
            queue.put_nowait(StreamEvent.token(self.output))
        if self.outcome is not None:
            queue.put_nowait(self.outcome)
        else:
            self.subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self.subscribers:
            self.subscribers.remove(queue)

    def append(self, text: str) -> None:
        self.parts.append(text)
        self._broadcast(StreamEvent.token(text))

    def finish(self, outcome: StreamEvent) -> None:
        self.outcome = outcome
        self._broadcast(outcome)
        self.subscribers.clear()

    def _broadcast(self, event: StreamEvent) -> None:
        for queue in self.subscribers:
            queue.put_nowait(event)


class JobRunner:
    """Runs one asyncio task per executing job and streams its events.

    Each execution is owned by its task, not by the client connection: a
    client that disconnects only drops its subscription, the job still runs to
    a terminal state and its result is persisted.  A second stream opened on
    a job that is already executing attaches to the same execution.

    Cancellation is cooperative.  The runner stops pulling chunks as soon as
    it sees the cancel signal, but a provider blocked inside a single chunk
    only notices once that chunk arrives.
    """

    def __init__(
        self,
        store: JobStore,
        registry: ProviderRegistry,
        metrics: MetricsCollaborator,
        *,
        cancel_poll_every: int = 10,
    ) -> None:
        self._store = store
        self._registry = registry
        self._metrics = metrics
        self._cancel_poll_every = cancel_poll_every
        self._executions: Dict[str, _Execution] = {}

    # ── Open Stream ──────────────────────────────────────────────────

    @property
    def active_count(self) -> int:
        """Number of jobs currently executing."""
        return len(self._executions)

    def is_active(self, job_id: str) -> bool:
        return job_id in self._executions

    async def stream(self, job: JobRecord) -> AsyncGenerator[StreamEvent, None]:
        """Yield events for *job* until (and including) its terminal event.

        Starts the execution if none is in flight for this job.  Callers are
        expected to have short-circuited terminal jobs already.

        Registering the execution, creating its task and subscribing happen
        without yielding to the loop, so a consumer cancelled at any await
        below never leaves a half-started execution behind.
        """
        execution = self._executions.get(job.id)
        if execution is None:
            execution = _Execution(job.id)
            self._executions[job.id] = execution
            execution.task = asyncio.create_task(self._run(job, execution))

        queue = execution.subscribe()
        try:
            while True:
                event = await queue.get()
                yield event
                if event.terminal:
                    break
        finally:
            execution.unsubscribe(queue)

    # ── Execution ────────────────────────────────────────────────────

    async def _run(self, job: JobRecord, execution: _Execution) -> None:
        # Stays ``cancelled`` only if the task itself is cancelled (shutdown).
        outcome = StreamEvent.cancelled()
        try:
            outcome = await self._start_and_drive(job, execution)
        except Exception as exc:
            logger.exception(
                "Job %s crashed (provider=%s model=%s)", job.id, job.provider, job.model
            )
            outcome = StreamEvent.error(str(exc) or type(exc).__name__)
        finally:
            self._executions.pop(job.id, None)
            execution.finish(outcome)

    async def _start_and_drive(self, job: JobRecord, execution: _Execution) -> StreamEvent:
        running = await self._store.update_job(
            job.id, expected=ACTIVE_STATUSES, status=JobStatus.running
        )
        if running is None:
            # Cancelled (or deleted) between the terminal check and this write.
            return self._outcome_for(await self._store.get_job(job.id))
        logger.info(
            "Job %s started (provider=%s model=%s)", job.id, job.provider, job.model,
            extra={"job_id": job.id},
        )
        return await self._drive(running, execution, time.monotonic())

    async def _drive(self, job: JobRecord, execution: _Execution, started: float) -> StreamEvent:
        capability = self._registry.resolve(job.provider)
        if capability is None:
            return await self._fail(
                job, execution, ProviderError(f"Provider '{job.provider}' not found for job {job.id}")
            )
        options = ProviderOptions(
            model=job.model,
            temperature=job.temperature,
            top_p=job.top_p,
            max_tokens=job.max_tokens,
        )
        usage: Optional[Usage] = None
        pulled = 0
        chunks = capability.stream(job.prompt, options, execution.cancel_event)
        try:
            async for chunk in chunks:
                if execution.cancel_event.is_set():
                    break
                if chunk.usage is not None:
                    usage = chunk.usage
                if chunk.content:
                    execution.append(chunk.content)
                pulled += 1
                if self._cancel_poll_every and pulled % self._cancel_poll_every == 0:
                    if await self._cancelled_elsewhere(job.id):
                        execution.cancel_event.set()
                        break
        except Exception as exc:
            if execution.cancel_event.is_set():
                return await self._settle_cancelled(job, execution)
            return await self._fail(job, execution, exc)
        finally:
            await chunks.aclose()

        if execution.cancel_event.is_set():
            return await self._settle_cancelled(job, execution)
        try:
            return await self._complete(job, execution, usage, started)
        except Exception as exc:
            logger.warning("Job %s metrics evaluation failed: %s", job.id, exc)
            return await self._fail(job, execution, exc)

    async def _cancelled_elsewhere(self, job_id: str) -> bool:
        current = await self._store.get_job(job_id)
        return current is None or current.status is JobStatus.cancelled

    async def _complete(
        self,
        job: JobRecord,
        execution: _Execution,
        reported: Optional[Usage],
        started: float,
    ) -> StreamEvent:
        output = execution.output
        duration_ms = int((time.monotonic() - started) * 1000)
        usage = resolve_usage(job.prompt, output, reported)
        cost = compute_cost(job.provider, job.model, usage)
        context = MetricContext(prompt=job.prompt, input_data=job.input_data)
        bag = await asyncio.to_thread(
            self._metrics.evaluate, output, job.selected_metrics, context
        )
        metrics = with_average_score(bag)
        metrics["response_time_ms"] = duration_ms

        done = await self._store.update_job(
            job.id,
            expected=(JobStatus.running,),
            status=JobStatus.completed,
            result=output,
            metrics=metrics,
            tokens_used=usage.total_tokens,
            cost_usd=cost,
        )
        if done is None:
            return await self._settle_lost_race(job, execution)
        logger.info(
            "Job %s completed in %d ms (provider=%s model=%s tokens=%d cost=%.6f)",
            job.id, duration_ms, job.provider, job.model, usage.total_tokens, cost,
            extra={"job_id": job.id},
        )
        return StreamEvent.metrics(metrics)

    async def _fail(self, job: JobRecord, execution: _Execution, exc: BaseException) -> StreamEvent:
        message = str(exc) or type(exc).__name__
        failed = await self._store.update_job(
            job.id,
            expected=(JobStatus.running,),
            status=JobStatus.failed,
            result=execution.output or None,
            error_message=message,
            error_type=categorize_error(exc),
        )
        if failed is None:
            return await self._settle_lost_race(job, execution)
        logger.warning(
            "Job %s failed (provider=%s model=%s): %s", job.id, job.provider, job.model, message,
            extra={"job_id": job.id},
        )
        return StreamEvent.error(message)

    async def _settle_cancelled(self, job: JobRecord, execution: _Execution) -> StreamEvent:
        """Persist a cancellation observed by the runner itself.

        The Cancel operation normally wrote ``cancelled`` already; shutdown
        does not, so the transition is attempted here too.  Either way the
        partial output is kept on the record.
        """
        output = execution.output or None
        cancelled = await self._store.update_job(
            job.id,
            expected=(JobStatus.running,),
            status=JobStatus.cancelled,
            result=output,
            error_message=execution.cancel_reason,
        )
        if cancelled is None:
            return await self._settle_lost_race(job, execution)
        logger.info("Job %s cancelled: %s", job.id, execution.cancel_reason, extra={"job_id": job.id})
        return StreamEvent.cancelled()

    async def _settle_lost_race(self, job: JobRecord, execution: _Execution) -> StreamEvent:
        """The job left ``running`` under us; report whatever the store holds."""
        current = await self._store.get_job(job.id)
        if current is not None and current.status is JobStatus.cancelled and execution.parts:
            await self._store.update_job(
                job.id, expected=(JobStatus.cancelled,), result=execution.output
            )
        if current is not None:
            logger.info("Job %s already %s; dropping runner transition", job.id, current.status.value)
        return self._outcome_for(current)

    @staticmethod
    def _outcome_for(job: Optional[JobRecord]) -> StreamEvent:
        """Terminal event matching a stored record."""
        if job is None:
            return StreamEvent.error("Job not found")
        if job.status is JobStatus.completed:
            return StreamEvent.metrics(job.metrics or {})
        if job.status is JobStatus.cancelled:
            return StreamEvent.cancelled()
        if job.status is JobStatus.failed:
            return StreamEvent.error(job.error_message or "Job failed")
        return StreamEvent.error(f"Job is {job.status.value}")

    # ── Cancel ───────────────────────────────────────────────────────

    def signal_cancel(self, job_id: str, reason: str = CANCELLED_BY_USER) -> bool:
        """Ask an in-flight execution to stop.  False when none is running."""
        execution = self._executions.get(job_id)
        if execution is None:
            return False
        execution.cancel_reason = reason
        execution.cancel_event.set()
        return True

    async def join(self, job_id: str) -> None:
        """Wait until the execution for *job_id* (if any) has finished."""
        execution = self._executions.get(job_id)
        if execution is not None and execution.task is not None:
            await asyncio.gather(execution.task, return_exceptions=True)

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Signal every in-flight execution and wait briefly for them to settle.

        Executions whose provider ignores the signal past *grace_seconds* are
        cancelled outright and their jobs persisted as ``cancelled`` here.
        """
        tasks: Dict[asyncio.Task, _Execution] = {}
        for job_id, execution in list(self._executions.items()):
            self.signal_cancel(job_id, CANCELLED_BY_SHUTDOWN)
            if execution.task is not None:
                tasks[execution.task] = execution
        if not tasks:
            return
        logger.info("Waiting for %d running job(s) to stop", len(tasks))
        _, pending = await asyncio.wait(list(tasks), timeout=grace_seconds)
        if not pending:
            return
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in pending:
            execution = tasks[task]
            await self._store.update_job(
                execution.job_id,
                expected=ACTIVE_STATUSES,
                status=JobStatus.cancelled,
                result=execution.output or None,
                error_message=CANCELLED_BY_SHUTDOWN,
            )
            logger.warning("Job %s did not stop within %.1fs; marked cancelled",
                           execution.job_id, grace_seconds)
