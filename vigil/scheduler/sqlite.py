"""
SQLite job store - durable persistence via aiosqlite.

DB: ~/.vigil/research.db (configurable)

Table: jobs
    id                        TEXT  PK
    query                     TEXT
    status                    TEXT  idle | running | error
    include_similar_diseases  INT   (0/1)
    include_ai_summary        INT   (0/1)
    additional_diseases       TEXT  (JSON list)
    schedule                  TEXT  NULL = manual only
    created_at, updated_at    INT   (µs since epoch, UTC)
    next_run_at, last_run_at  INT   NULL
    error                     TEXT

Table: runs
    id, job_id, status, started_at, completed_at, triggered_manually,
    brief (JSON), knowledge_gaps (JSON), source_warnings (JSON), error

Timestamps are stored as integer microseconds so ordering and equality
survive the round trip exactly.

start_run flips the job to running with a conditional UPDATE, so two
processes sharing the database cannot both start the same job.
complete_run only touches runs that are still running.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from vigil.core.errors import (
    JobAlreadyRunningError,
    JobNotFoundError,
    RunAlreadyFinishedError,
    RunNotFoundError,
    StorageError,
)
from vigil.scheduler.job import (
    JobDefinition,
    JobStatus,
    ResearchJob,
    ResearchRun,
    RunStatus,
    SourceWarning,
)
from vigil.scheduler.schedule import utcnow
from vigil.scheduler.store import UNSET, ResearchJobStore, build_job

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def _to_micros(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _MICROSECOND


def _from_micros(value: int | None) -> datetime | None:
    if value is None:
        return None
    return _EPOCH + timedelta(microseconds=value)


def _run_fields(
    status: Any,
    completed_at: datetime | None,
    brief: Any,
    knowledge_gaps: Any,
    source_warnings: Any,
    error: Any,
) -> dict[str, Any]:
    """Column values for a run update; UNSET arguments are left out."""
    fields: dict[str, Any] = {}
    if status is not UNSET:
        fields["status"] = RunStatus(status).value
    if brief is not UNSET:
        fields["brief"] = json.dumps(brief, default=str) if brief is not None else None
    if knowledge_gaps is not UNSET:
        fields["knowledge_gaps"] = json.dumps(list(knowledge_gaps))
    if source_warnings is not UNSET:
        fields["source_warnings"] = json.dumps([w.to_dict() for w in source_warnings])
    if error is not UNSET:
        fields["error"] = error
    fields["completed_at"] = _to_micros(completed_at or utcnow())
    return fields


class SQLiteResearchJobStore(ResearchJobStore):
    """
    SQLite-backed job/run store.

    Usage:
        store = SQLiteResearchJobStore("~/.vigil/research.db")
        await store.initialize()

        job = await store.create_job(JobDefinition(query="Fibromyalgia"))
        await store.close()
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db: aiosqlite.Connection | None = None
        # Serializes multi-statement writes on the shared connection
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(str(self._db_path))
            self._db.row_factory = aiosqlite.Row

            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA synchronous=NORMAL")

            await self._db.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    id                       TEXT PRIMARY KEY,
                    query                    TEXT NOT NULL,
                    status                   TEXT NOT NULL DEFAULT 'idle',
                    include_similar_diseases INTEGER NOT NULL DEFAULT 1,
                    include_ai_summary       INTEGER NOT NULL DEFAULT 1,
                    additional_diseases      TEXT NOT NULL DEFAULT '[]',
                    schedule                 TEXT,
                    created_at               INTEGER NOT NULL,
                    updated_at               INTEGER NOT NULL,
                    next_run_at              INTEGER,
                    last_run_at              INTEGER,
                    error                    TEXT
                )
                """
            )
            await self._db.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id                 TEXT PRIMARY KEY,
                    job_id             TEXT NOT NULL REFERENCES jobs(id),
                    status             TEXT NOT NULL,
                    started_at         INTEGER NOT NULL,
                    completed_at       INTEGER,
                    triggered_manually INTEGER NOT NULL DEFAULT 0,
                    brief              TEXT,
                    knowledge_gaps     TEXT NOT NULL DEFAULT '[]',
                    source_warnings    TEXT NOT NULL DEFAULT '[]',
                    error              TEXT
                )
                """
            )
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_jobs_next_run ON jobs(next_run_at)"
            )
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_runs_job ON runs(job_id, started_at)"
            )
            await self._db.commit()
            logger.debug(f"SQLite job store initialized at {self._db_path}")

        except aiosqlite.Error as e:
            raise StorageError(f"Failed to initialize SQLite at {self._db_path}: {e}") from e

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database is initialized."""
        if self._db is None:
            await self.initialize()
        return self._db  # type: ignore[return-value]

    # ── Jobs ─────────────────────────────────────────────────────────────────

    async def create_job(self, definition: JobDefinition) -> ResearchJob:
        db = await self._ensure_db()
        job = build_job(definition, utcnow())
        async with self._write_lock:
            try:
                await db.execute(
                    """
                    INSERT INTO jobs (
                        id, query, status, include_similar_diseases, include_ai_summary,
                        additional_diseases, schedule, created_at, updated_at,
                        next_run_at, last_run_at, error
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job.id,
                        job.query,
                        job.status.value,
                        int(job.include_similar_diseases),
                        int(job.include_ai_summary),
                        json.dumps(job.additional_diseases),
                        job.schedule,
                        _to_micros(job.created_at),
                        _to_micros(job.updated_at),
                        _to_micros(job.next_run_at),
                        _to_micros(job.last_run_at),
                        job.error,
                    ),
                )
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                raise StorageError(f"Failed to create job for {job.query!r}: {e}") from e
        return job

    async def list_jobs(self) -> list[ResearchJob]:
        rows = await self._fetch_all("SELECT * FROM jobs ORDER BY created_at ASC, rowid ASC")
        return [self._row_to_job(r) for r in rows]

    async def find_due_jobs(self, reference: datetime) -> list[ResearchJob]:
        rows = await self._fetch_all(
            """
            SELECT * FROM jobs
            WHERE next_run_at IS NOT NULL AND next_run_at <= ? AND status != ?
            ORDER BY next_run_at ASC, rowid ASC
            """,
            (_to_micros(reference), JobStatus.RUNNING.value),
        )
        return [self._row_to_job(r) for r in rows]

    async def get_job(self, job_id: str) -> ResearchJob | None:
        rows = await self._fetch_all("SELECT * FROM jobs WHERE id = ?", (job_id,))
        return self._row_to_job(rows[0]) if rows else None

    async def update_job_schedule(
        self,
        job_id: str,
        *,
        status: JobStatus = UNSET,
        last_run_at: datetime | None = UNSET,
        next_run_at: datetime | None = UNSET,
        error: str | None = UNSET,
        updated_at: datetime | None = None,
    ) -> ResearchJob:
        fields: dict[str, Any] = {}
        if status is not UNSET:
            fields["status"] = JobStatus(status).value
        if last_run_at is not UNSET:
            fields["last_run_at"] = _to_micros(last_run_at)
        if next_run_at is not UNSET:
            fields["next_run_at"] = _to_micros(next_run_at)
        if error is not UNSET:
            fields["error"] = error
        fields["updated_at"] = _to_micros(updated_at or utcnow())

        db = await self._ensure_db()
        assignments = ", ".join(f"{name} = ?" for name in fields)
        async with self._write_lock:
            try:
                cursor = await db.execute(
                    f"UPDATE jobs SET {assignments} WHERE id = ?",
                    (*fields.values(), job_id),
                )
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                raise StorageError(f"Failed to update job {job_id}: {e}") from e

        if cursor.rowcount == 0:
            raise JobNotFoundError(job_id)
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    # ── Runs ─────────────────────────────────────────────────────────────────

    async def start_run(
        self,
        job_id: str,
        *,
        started_at: datetime,
        triggered_manually: bool = False,
    ) -> ResearchRun:
        db = await self._ensure_db()
        run = ResearchRun(
            job_id=job_id,
            started_at=started_at,
            status=RunStatus.RUNNING,
            triggered_manually=bool(triggered_manually),
        )
        async with self._write_lock:
            try:
                cursor = await db.execute(
                    "UPDATE jobs SET status = ?, updated_at = ? WHERE id = ? AND status != ?",
                    (
                        JobStatus.RUNNING.value,
                        _to_micros(utcnow()),
                        job_id,
                        JobStatus.RUNNING.value,
                    ),
                )
                claimed = cursor.rowcount > 0
                if claimed:
                    await db.execute(
                        """
                        INSERT INTO runs (id, job_id, status, started_at, triggered_manually)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            run.id,
                            job_id,
                            run.status.value,
                            _to_micros(started_at),
                            int(run.triggered_manually),
                        ),
                    )
                    await db.commit()
                else:
                    await db.rollback()
            except aiosqlite.Error as e:
                # Never leave the job flipped to running without its run row
                await db.rollback()
                raise StorageError(f"Failed to start run for job {job_id}: {e}") from e

        if not claimed:
            if await self.get_job(job_id) is None:
                raise JobNotFoundError(job_id)
            raise JobAlreadyRunningError(job_id)
        return run

    async def complete_run(
        self,
        run_id: str,
        *,
        status: RunStatus = UNSET,
        completed_at: datetime | None = None,
        brief: dict | None = UNSET,
        knowledge_gaps: list[str] = UNSET,
        source_warnings: list[SourceWarning] = UNSET,
        error: str | None = UNSET,
    ) -> ResearchRun:
        db = await self._ensure_db()
        async with self._write_lock:
            try:
                fields = _run_fields(
                    status, completed_at, brief, knowledge_gaps, source_warnings, error
                )
                assignments = ", ".join(f"{name} = ?" for name in fields)
                # Only a running run can be finished; a reclaimed run stays failed
                cursor = await db.execute(
                    f"UPDATE runs SET {assignments} WHERE id = ? AND status = ?",
                    (*fields.values(), run_id, RunStatus.RUNNING.value),
                )
                await db.commit()
            except (aiosqlite.Error, TypeError, ValueError) as e:
                await db.rollback()
                raise StorageError(f"Failed to complete run {run_id}: {e}") from e

        rows = await self._fetch_all("SELECT * FROM runs WHERE id = ?", (run_id,))
        if not rows:
            raise RunNotFoundError(run_id)
        if cursor.rowcount == 0:
            raise RunAlreadyFinishedError(run_id)
        return self._row_to_run(rows[0])

    async def list_runs(self, job_id: str) -> list[ResearchRun]:
        rows = await self._fetch_all(
            "SELECT * FROM runs WHERE job_id = ? ORDER BY started_at DESC, rowid DESC",
            (job_id,),
        )
        return [self._row_to_run(r) for r in rows]

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        db = await self._ensure_db()
        try:
            async with db.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    def _row_to_job(self, row: aiosqlite.Row) -> ResearchJob:
        try:
            return ResearchJob(
                id=row["id"],
                query=row["query"],
                status=JobStatus(row["status"]),
                include_similar_diseases=bool(row["include_similar_diseases"]),
                include_ai_summary=bool(row["include_ai_summary"]),
                additional_diseases=json.loads(row["additional_diseases"] or "[]"),
                schedule=row["schedule"],
                created_at=_from_micros(row["created_at"]),
                updated_at=_from_micros(row["updated_at"]),
                next_run_at=_from_micros(row["next_run_at"]),
                last_run_at=_from_micros(row["last_run_at"]),
                error=row["error"],
            )
        except ValueError as e:
            raise StorageError(f"Corrupt job row {row['id']}: {e}") from e

    def _row_to_run(self, row: aiosqlite.Row) -> ResearchRun:
        try:
            return ResearchRun(
                id=row["id"],
                job_id=row["job_id"],
                status=RunStatus(row["status"]),
                started_at=_from_micros(row["started_at"]),
                completed_at=_from_micros(row["completed_at"]),
                triggered_manually=bool(row["triggered_manually"]),
                brief=json.loads(row["brief"]) if row["brief"] else None,
                knowledge_gaps=json.loads(row["knowledge_gaps"] or "[]"),
                source_warnings=[
                    SourceWarning.from_dict(w)
                    for w in json.loads(row["source_warnings"] or "[]")
                ],
                error=row["error"],
            )
        except ValueError as e:
            raise StorageError(f"Corrupt run row {row['id']}: {e}") from e
