"""SQLite-backed persistence for job records."""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

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

logger = logging.getLogger(__name__)

_SNIPPET_CHARS = 100

# Columns that ``update_job`` may set, keyed by JobRecord field name.
_UPDATABLE = {
    "status": "status",
    "result": "result",
    "metrics": "metrics",
    "error_message": "error_message",
    "error_type": "error_type",
    "tokens_used": "tokens_used",
    "cost_usd": "cost_usd",
}
_JSON_COLUMNS = ("input_data", "metrics", "selected_metrics")


class JobStore:
    """Async SQLite store for job lifecycle tracking.

    Every operation touches a single row.  ``update_job`` accepts an
    ``expected`` set of statuses and then behaves as a compare-and-set: the
    write is dropped when the row has already left those states.
    """

    def __init__(self, db_path: str = "promptlab_jobs.db") -> None:
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._last_ts: Optional[datetime] = None

    async def initialize(self) -> None:
        """Open the connection and create the jobs table if it doesn't exist."""
        if self._db is not None:
            return
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                prompt TEXT NOT NULL,
                template TEXT,
                input_data TEXT,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                result TEXT,
                metrics TEXT,
                error_message TEXT,
                error_type TEXT,
                tokens_used INTEGER,
                cost_usd REAL,
                temperature REAL,
                top_p REAL,
                max_tokens INTEGER,
                selected_metrics TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._db.execute("CREATE INDEX IF NOT EXISTS jobs_status_idx ON jobs (status)")
        await self._db.execute("CREATE INDEX IF NOT EXISTS jobs_created_at_idx ON jobs (created_at)")
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS jobs_provider_model_idx ON jobs (provider, model)"
        )
        await self._db.commit()
        async with self._db.execute("SELECT MAX(updated_at) FROM jobs") as cur:
            row = await cur.fetchone()
        if row is not None and row[0]:
            self._last_ts = datetime.fromisoformat(row[0])

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def ping(self) -> bool:
        """True when the database answers a trivial query."""
        try:
            async with self._conn().execute("SELECT 1") as cur:
                await cur.fetchone()
        except (aiosqlite.Error, RuntimeError):
            return False
        return True

    # ── CRUD ─────────────────────────────────────────────────────────

    async def create_job(self, data: NewJob) -> JobRecord:
        """Insert a new pending job and return its record."""
        db = self._conn()
        now = self._tick()
        rec = JobRecord(
            id=str(uuid.uuid4()),
            status=JobStatus.pending,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        await db.execute(
            """
            INSERT INTO jobs (id, prompt, template, input_data, provider, model, status,
                              temperature, top_p, max_tokens, selected_metrics,
                              created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                rec.id,
                rec.prompt,
                rec.template,
                _dump(rec.input_data),
                rec.provider,
                rec.model,
                rec.status.value,
                rec.temperature,
                rec.top_p,
                rec.max_tokens,
                _dump(rec.selected_metrics),
                _iso(rec.created_at),
                _iso(rec.updated_at),
            ),
        )
        await db.commit()
        return rec

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        """Fetch a single job by ID."""
        async with self._conn().execute("SELECT * FROM jobs WHERE id = ?", (job_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def update_job(
        self,
        job_id: str,
        *,
        expected: Optional[Iterable[JobStatus]] = None,
        **fields: Any,
    ) -> Optional[JobRecord]:
        """Apply *fields* to a job and return the updated record.

        Returns None when the job does not exist or, with *expected*, when its
        current status is not one of the expected ones.
        """
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        db = self._conn()
        sets: List[str] = []
        vals: List[Any] = []
        for name, value in fields.items():
            sets.append(f"{_UPDATABLE[name]} = ?")
            if isinstance(value, JobStatus):
                value = value.value
            elif name in _JSON_COLUMNS:
                value = _dump(value)
            vals.append(value)
        sets.append("updated_at = ?")
        vals.append(_iso(self._tick()))

        where = "id = ?"
        vals.append(job_id)
        if expected is not None:
            states = [JobStatus(s).value for s in expected]
            where += f" AND status IN ({', '.join('?' for _ in states)})"
            vals.extend(states)

        cur = await db.execute(f"UPDATE jobs SET {', '.join(sets)} WHERE {where}", vals)
        changed = cur.rowcount
        await cur.close()
        await db.commit()
        if changed == 0:
            return None
        return await self.get_job(job_id)

    async def delete_job(self, job_id: str) -> bool:
        """Hard-delete a job.  False when it did not exist."""
        db = self._conn()
        cur = await db.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
        deleted = cur.rowcount
        await cur.close()
        await db.commit()
        return deleted > 0

    # ── Queries ──────────────────────────────────────────────────────

    async def list_jobs(self, options: Optional[ListJobsOptions] = None) -> List[JobSummary]:
        """List job summaries, newest first."""
        options = options or ListJobsOptions()
        conditions: List[str] = []
        vals: List[Any] = []
        if options.provider:
            conditions.append("provider = ?")
            vals.append(options.provider)
        if options.status is not None:
            conditions.append("status = ?")
            vals.append(options.status.value)
        if options.since is not None:
            conditions.append("created_at > ?")
            vals.append(_iso(_as_utc(options.since)))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        vals.extend([options.limit, options.offset])
        sql = (
            "SELECT id, status, created_at, provider, model, cost_usd, metrics, result "
            f"FROM jobs {where} ORDER BY created_at DESC, seq DESC LIMIT ? OFFSET ?"
        )
        async with self._conn().execute(sql, vals) as cur:
            rows = await cur.fetchall()
        return [self._row_to_summary(r) for r in rows]

    async def get_previous_job(self, job_id: str) -> Optional[JobRecord]:
        """Latest job created strictly before *job_id* (None if none exists)."""
        db = self._conn()
        async with db.execute("SELECT created_at FROM jobs WHERE id = ?", (job_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            return None
        async with db.execute(
            "SELECT * FROM jobs WHERE created_at < ? ORDER BY created_at DESC, seq DESC LIMIT 1",
            (row["created_at"],),
        ) as cur:
            prev = await cur.fetchone()
        return self._row_to_record(prev) if prev is not None else None

    async def dashboard_stats(self, since: datetime) -> DashboardStats:
        """Daily mean ``avgScore`` and total cost per model for jobs created at or after *since*.

        Days are UTC calendar days taken from ``created_at``.  A day whose
        jobs carry no ``avgScore`` reports 0.
        """
        db = self._conn()
        threshold = _iso(_as_utc(since))
        async with db.execute(
            """
            SELECT substr(created_at, 1, 10) AS day,
                   AVG(json_extract(metrics, '$.avgScore')) AS avg_score
            FROM jobs
            WHERE created_at >= ?
            GROUP BY day
            ORDER BY day
            """,
            (threshold,),
        ) as cur:
            score_rows = await cur.fetchall()
        async with db.execute(
            """
            SELECT model, SUM(COALESCE(cost_usd, 0)) AS total_cost
            FROM jobs
            WHERE created_at >= ?
            GROUP BY model
            ORDER BY model
            """,
            (threshold,),
        ) as cur:
            cost_rows = await cur.fetchall()
        return DashboardStats(
            score_history=[
                ScorePoint(date=r["day"], avg_score=r["avg_score"] or 0.0) for r in score_rows
            ],
            cost_by_model=[
                ModelCost(model=r["model"], total_cost=r["total_cost"] or 0.0) for r in cost_rows
            ],
        )

    # ── Helpers ───────────────────────────────────────────────────────

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("JobStore used before initialize()")
        return self._db

    def _tick(self) -> datetime:
        """UTC timestamp strictly later than any previously issued one."""
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> JobRecord:
        d: Dict[str, Any] = {k: row[k] for k in row.keys() if k != "seq"}
        for col in _JSON_COLUMNS:
            d[col] = json.loads(d[col]) if d.get(col) is not None else None
        return JobRecord(**d)

    @staticmethod
    def _row_to_summary(row: aiosqlite.Row) -> JobSummary:
        metrics = json.loads(row["metrics"]) if row["metrics"] else None
        result = row["result"]
        snippet = None
        if result:
            collapsed = " ".join(result.split())
            snippet = collapsed[:_SNIPPET_CHARS] + ("..." if len(collapsed) > _SNIPPET_CHARS else "")
        return JobSummary(
            id=row["id"],
            status=row["status"],
            created_at=row["created_at"],
            provider=row["provider"],
            model=row["model"],
            cost_usd=row["cost_usd"],
            avg_score=(metrics or {}).get("avgScore"),
            result_snippet=snippet,
        )


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")
