"""
ResearchJobStore - persistence interface for research jobs and runs.

The store is deliberately dumb: it records what the agent tells it and
never decides when anything runs. Orchestration lives in
ResearchAutonomyAgent so backends can be swapped freely.

Implementations:
    InMemoryResearchJobStore - dict-based, for tests and local development
    SQLiteResearchJobStore   - durable, aiosqlite

Partial updates use keyword arguments defaulting to UNSET, so an explicit
None (e.g. clearing next_run_at) is distinguishable from "leave alone".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from vigil.scheduler.job import (
    JobDefinition,
    JobStatus,
    ResearchJob,
    ResearchRun,
    RunStatus,
    SourceWarning,
)
from vigil.scheduler.schedule import calculate_next_run_at


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def build_job(definition: JobDefinition, now: datetime) -> ResearchJob:
    """
    Apply creation defaults to a definition.

    next_run_at comes from the definition if given, otherwise from the
    schedule, otherwise None (manual only).
    """
    next_run_at = definition.next_run_at
    if next_run_at is None:
        next_run_at = calculate_next_run_at(definition.schedule, from_=now)

    return ResearchJob(
        query=definition.query,
        status=JobStatus.IDLE,
        include_similar_diseases=(
            True if definition.include_similar_diseases is None
            else bool(definition.include_similar_diseases)
        ),
        include_ai_summary=(
            True if definition.include_ai_summary is None
            else bool(definition.include_ai_summary)
        ),
        additional_diseases=list(definition.additional_diseases or []),
        schedule=definition.schedule or None,
        created_at=now,
        updated_at=now,
        next_run_at=next_run_at,
        last_run_at=None,
        error=None,
    )


class ResearchJobStore(ABC):
    """
    Abstract base class for job/run persistence.

    Usage:
        job = await store.create_job(JobDefinition(query="Fibromyalgia",
                                                   schedule="interval:60"))
        due = await store.find_due_jobs(reference)
        run = await store.start_run(job.id, started_at=now)
        await store.complete_run(run.id, status=RunStatus.COMPLETED)
        await store.update_job_schedule(job.id, status=JobStatus.IDLE, ...)
    """

    @abstractmethod
    async def create_job(self, definition: JobDefinition) -> ResearchJob:
        """Persist a new idle job built with build_job()."""
        ...

    @abstractmethod
    async def list_jobs(self) -> list[ResearchJob]:
        """All jobs in creation order."""
        ...

    @abstractmethod
    async def find_due_jobs(self, reference: datetime) -> list[ResearchJob]:
        """
        Jobs with next_run_at <= reference that are not running,
        ascending by next_run_at.
        """
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> ResearchJob | None:
        """Get a job by id. Returns None if not found."""
        ...

    @abstractmethod
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
        """
        Merge the supplied fields. updated_at is always refreshed
        (to the given value or now).

        Raises JobNotFoundError for unknown ids.
        """
        ...

    @abstractmethod
    async def start_run(
        self,
        job_id: str,
        *,
        started_at: datetime,
        triggered_manually: bool = False,
    ) -> ResearchRun:
        """
        Create a running run and mark the job running in one step.

        Raises JobNotFoundError for unknown jobs and JobAlreadyRunningError
        (without creating a run) if the job is already running.
        """
        ...

    @abstractmethod
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
        """
        Merge the supplied fields; completed_at defaults to now.
        Does not touch the owning job. Only a running run can be
        completed, so a run that was already finished (for example
        reclaimed as stale) keeps its recorded outcome.

        Raises RunNotFoundError for unknown ids and
        RunAlreadyFinishedError for runs that are no longer running.
        """
        ...

    @abstractmethod
    async def list_runs(self, job_id: str) -> list[ResearchRun]:
        """Runs for a job, most recent first."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
