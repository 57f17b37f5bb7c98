"""
In-memory job store - for testing and local development.

Dict-based storage. Data is lost when the process exits, and nothing
here is shared between processes: two processes each see their own
jobs, so the running-status check only protects callers inside one
event loop.
"""

from __future__ import annotations

import copy
from datetime import datetime

from vigil.core.errors import (
    JobAlreadyRunningError,
    JobNotFoundError,
    RunAlreadyFinishedError,
    RunNotFoundError,
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


class InMemoryResearchJobStore(ResearchJobStore):
    """
    In-memory job/run store.

    Returned records are copies, so mutating them does not change
    what is stored.

    Usage:
        store = InMemoryResearchJobStore()
        job = await store.create_job(JobDefinition(query="Morgellons disease"))
        assert (await store.get_job(job.id)).query == "Morgellons disease"
    """

    def __init__(self) -> None:
        self._jobs: dict[str, ResearchJob] = {}
        self._runs: dict[str, ResearchRun] = {}

    async def create_job(self, definition: JobDefinition) -> ResearchJob:
        job = build_job(definition, utcnow())
        self._jobs[job.id] = job
        return copy.deepcopy(job)

    async def list_jobs(self) -> list[ResearchJob]:
        return [copy.deepcopy(j) for j in self._jobs.values()]

    async def find_due_jobs(self, reference: datetime) -> list[ResearchJob]:
        due = [
            j for j in self._jobs.values()
            if j.status is not JobStatus.RUNNING
            and j.next_run_at is not None
            and j.next_run_at <= reference
        ]
        due.sort(key=lambda j: j.next_run_at)
        return [copy.deepcopy(j) for j in due]

    async def get_job(self, job_id: str) -> ResearchJob | None:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

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
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if status is not UNSET:
            job.status = JobStatus(status)
        if last_run_at is not UNSET:
            job.last_run_at = last_run_at
        if next_run_at is not UNSET:
            job.next_run_at = next_run_at
        if error is not UNSET:
            job.error = error
        job.updated_at = updated_at or utcnow()
        return copy.deepcopy(job)

    async def start_run(
        self,
        job_id: str,
        *,
        started_at: datetime,
        triggered_manually: bool = False,
    ) -> ResearchRun:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status is JobStatus.RUNNING:
            raise JobAlreadyRunningError(job_id)

        run = ResearchRun(
            job_id=job_id,
            started_at=started_at,
            status=RunStatus.RUNNING,
            triggered_manually=bool(triggered_manually),
        )
        self._runs[run.id] = run
        await self.update_job_schedule(job_id, status=JobStatus.RUNNING)
        return copy.deepcopy(run)

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
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        if run.status is not RunStatus.RUNNING:
            raise RunAlreadyFinishedError(run_id)

        if status is not UNSET:
            run.status = RunStatus(status)
        if brief is not UNSET:
            run.brief = copy.deepcopy(brief)
        if knowledge_gaps is not UNSET:
            run.knowledge_gaps = list(knowledge_gaps)
        if source_warnings is not UNSET:
            run.source_warnings = list(source_warnings)
        if error is not UNSET:
            run.error = error
        run.completed_at = completed_at or utcnow()
        return copy.deepcopy(run)

    async def list_runs(self, job_id: str) -> list[ResearchRun]:
        runs = [r for r in self._runs.values() if r.job_id == job_id]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return [copy.deepcopy(r) for r in runs]

    async def close(self) -> None:
        self._jobs.clear()
        self._runs.clear()
