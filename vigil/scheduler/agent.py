"""
ResearchAutonomyAgent - decides when research jobs run and drives each
run through its lifecycle.

Design:
- Purely reactive: no timer, no background task. Something outside
  (an HTTP request, cron, the CLI) calls run_due_jobs() or trigger_job()
- run_due_jobs() executes at most max_concurrent_runs due jobs, one after
  another, in the order the store returns them. Anything left over stays
  due and is picked up by the next call
- The job's status field is the single-flight guard. The store flips it
  to running inside start_run() and refuses if it is already running
- Executor failures never escape: they become a failed run, the job is
  marked error, and next_run_at is recomputed exactly as on success so a
  failure never stops future scheduling
- Optional stale-run reclaim: with stale_run_after set, runs stuck in
  running longer than that are failed so their job becomes eligible again
- A run is finished exactly once. If a reclaim got there first, the late
  result is dropped and the reclaimed outcome stands
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from vigil.core.config import AutonomyConfig
from vigil.core.errors import (
    JobAlreadyRunningError,
    JobNotFoundError,
    RunAlreadyFinishedError,
    RunNotFoundError,
    StorageError,
    ValidationError,
)
from vigil.research.base import ResearchExecutor, ResearchOptions
from vigil.scheduler.job import (
    JobDefinition,
    JobStatus,
    ResearchJob,
    ResearchRun,
    RunStatus,
    SourceWarning,
    to_iso,
)
from vigil.scheduler.schedule import calculate_next_run_at, is_supported_schedule, utcnow
from vigil.scheduler.store import ResearchJobStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_RUNS = 1
UNKNOWN_FAILURE = "Unknown research execution failure"
STALE_RUN_MESSAGE = "Run abandoned after exceeding stale threshold"


def normalize_definition(definition: JobDefinition) -> JobDefinition:
    """
    Trim and validate a job definition.

    Raises ValidationError for an empty query or unsupported schedule.
    """
    query = (definition.query or "").strip()
    if not query:
        raise ValidationError('The field "query" is required.')

    schedule = definition.schedule.strip() if definition.schedule else None
    if not is_supported_schedule(schedule):
        raise ValidationError(
            'Unsupported schedule format. Use "interval:<minutes>" or omit the field.',
            details={"schedule": schedule},
        )

    diseases = definition.additional_diseases
    if diseases is not None:
        diseases = [d.strip() for d in diseases if isinstance(d, str) and d.strip()]

    return replace(
        definition,
        query=query,
        schedule=schedule or None,
        additional_diseases=diseases,
    )


class ResearchAutonomyAgent:
    """
    Coordinates autonomous research jobs.

    Usage:
        agent = ResearchAutonomyAgent(store, executor, max_concurrent_runs=1)
        await agent.ensure_seed_jobs(build_default_job_definitions())

        runs = await agent.run_due_jobs()      # called by cron / endpoint
        run = await agent.trigger_job(job_id)  # manual run
    """

    def __init__(
        self,
        store: ResearchJobStore,
        executor: ResearchExecutor,
        max_concurrent_runs: int = DEFAULT_MAX_CONCURRENT_RUNS,
        executor_timeout: float | None = None,
        stale_run_after: timedelta | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._max_concurrent_runs = (
            max_concurrent_runs if max_concurrent_runs and max_concurrent_runs > 0
            else DEFAULT_MAX_CONCURRENT_RUNS
        )
        self._executor_timeout = executor_timeout
        self._stale_run_after = stale_run_after
        self._in_flight: set[str] = set()  # job IDs executing in this process

    @classmethod
    def from_config(
        cls,
        store: ResearchJobStore,
        executor: ResearchExecutor,
        config: AutonomyConfig,
    ) -> "ResearchAutonomyAgent":
        return cls(
            store,
            executor,
            max_concurrent_runs=config.max_concurrent_runs,
            executor_timeout=config.executor_timeout,
            stale_run_after=config.stale_run_after,
        )

    @property
    def store(self) -> ResearchJobStore:
        return self._store

    @property
    def executor(self) -> ResearchExecutor:
        return self._executor

    @property
    def max_concurrent_runs(self) -> int:
        return self._max_concurrent_runs

    # ── Job definition ────────────────────────────────────────────────────────

    async def create_job(self, definition: JobDefinition) -> ResearchJob:
        """Validate and persist a single job definition."""
        job = await self._store.create_job(normalize_definition(definition))
        logger.info(f"Created research job {job.query!r} (id={job.id}, schedule={job.schedule})")
        return job

    async def ensure_seed_jobs(self, definitions: list[JobDefinition]) -> list[ResearchJob]:
        """
        Create the definitions whose query (case-insensitive) does not
        already exist. Safe to call repeatedly. Returns the new jobs.
        """
        if not definitions:
            return []

        normalized = [normalize_definition(d) for d in definitions]
        existing = {job.query.lower() for job in await self._store.list_jobs()}

        pending: list[JobDefinition] = []
        for definition in normalized:
            key = definition.query.lower()
            if key in existing:
                continue
            existing.add(key)
            pending.append(definition)

        if not pending:
            logger.debug("Seed jobs already present, nothing to create")
            return []

        created = await asyncio.gather(*(self._store.create_job(d) for d in pending))
        logger.info(f"Seeded {len(created)} research job(s)")
        return list(created)

    # ── Execution ─────────────────────────────────────────────────────────────

    async def run_due_jobs(self, reference: datetime | None = None) -> list[ResearchRun]:
        """Run up to max_concurrent_runs jobs due at or before reference."""
        reference = reference or utcnow()

        if self._stale_run_after is not None:
            await self.reclaim_stale_runs(reference)

        due_jobs = await self._store.find_due_jobs(reference)
        batch = due_jobs[: self._max_concurrent_runs]
        if len(due_jobs) > len(batch):
            logger.debug(f"{len(due_jobs) - len(batch)} due job(s) deferred to next call")

        runs: list[ResearchRun] = []
        for job in batch:
            try:
                runs.append(await self._execute_job(job))
            except JobAlreadyRunningError:
                logger.debug(f"Job {job.query!r} started elsewhere, skipping")
        return runs

    async def trigger_job(self, job_id: str) -> ResearchRun:
        """
        Run a job now, regardless of its schedule.

        Raises JobNotFoundError or JobAlreadyRunningError.
        """
        job = await self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_running:
            raise JobAlreadyRunningError(job_id)
        return await self._execute_job(job, manual=True)

    async def _execute_job(self, job: ResearchJob, manual: bool = False) -> ResearchRun:
        started_at = utcnow()
        run = await self._store.start_run(
            job.id,
            started_at=started_at,
            triggered_manually=manual,
        )
        self._in_flight.add(job.id)
        logger.info(f"Running research job {job.query!r} (id={job.id}, manual={manual})")

        try:
            try:
                brief = await self._research(job, started_at)
            except Exception as e:
                message = str(e) or UNKNOWN_FAILURE
                logger.warning(f"Research job {job.query!r} failed: {message}")
                return await self._finish_failed(job, run, message)
            return await self._finish_completed(job, run, brief)
        finally:
            # Store is updated before the guard is released
            self._in_flight.discard(job.id)

    async def _research(self, job: ResearchJob, started_at: datetime) -> dict[str, Any]:
        """Invoke the executor and turn its result into the stored brief."""
        options = ResearchOptions(
            include_ai_summary=job.include_ai_summary,
            include_similar_diseases=job.include_similar_diseases,
            additional_diseases=list(job.additional_diseases),
        )
        call = self._executor.execute(job.query, options)
        if self._executor_timeout is not None:
            try:
                result = await asyncio.wait_for(call, timeout=self._executor_timeout)
            except TimeoutError as e:
                raise TimeoutError(
                    f"Research executor timed out after {self._executor_timeout}s"
                ) from e
        else:
            result = await call

        brief = dict(result) if isinstance(result, Mapping) else result.to_dict()
        # The stored brief is plain JSON; datetimes and the like become strings
        return json.loads(json.dumps(self._attach_metadata(brief, job, started_at), default=str))

    async def _finish_completed(
        self, job: ResearchJob, run: ResearchRun, brief: dict[str, Any]
    ) -> ResearchRun:
        try:
            completed = await self._store.complete_run(
                run.id,
                status=RunStatus.COMPLETED,
                completed_at=utcnow(),
                brief=brief,
                knowledge_gaps=list(brief.get("knowledgeGaps") or []),
                source_warnings=self._collect_warnings(brief),
            )
        except RunAlreadyFinishedError:
            return await self._recorded_run(job, run)
        except StorageError as e:
            logger.error(f"Could not record result of research job {job.query!r}: {e.message}")
            return await self._finish_failed(
                job, run, f"Failed to record research result: {e.message}"
            )

        await self._store.update_job_schedule(
            job.id,
            status=JobStatus.IDLE,
            last_run_at=completed.completed_at,
            next_run_at=calculate_next_run_at(job.schedule, from_=completed.completed_at),
        )
        logger.info(
            f"Research job {job.query!r} completed "
            f"({len(completed.knowledge_gaps)} gaps, {len(completed.source_warnings)} warnings)"
        )
        return completed

    async def _finish_failed(
        self, job: ResearchJob, run: ResearchRun, message: str
    ) -> ResearchRun:
        completed_at = utcnow()
        try:
            failed = await self._store.complete_run(
                run.id,
                status=RunStatus.FAILED,
                completed_at=completed_at,
                error=message,
            )
        except RunAlreadyFinishedError:
            return await self._recorded_run(job, run)
        except StorageError:
            # The run row is lost, but the job must not stay running
            await self._mark_job_failed(job, completed_at, message)
            raise

        await self._mark_job_failed(job, failed.completed_at, failed.error)
        return failed

    async def _mark_job_failed(
        self, job: ResearchJob, failed_at: datetime, message: str | None
    ) -> None:
        await self._store.update_job_schedule(
            job.id,
            status=JobStatus.ERROR,
            last_run_at=failed_at,
            error=message,
            next_run_at=calculate_next_run_at(job.schedule, from_=failed_at),
        )

    async def _recorded_run(self, job: ResearchJob, run: ResearchRun) -> ResearchRun:
        """The stored outcome of a run someone else already finished."""
        logger.warning(
            f"Run {run.id} of research job {job.query!r} was already finished "
            f"(likely reclaimed as stale); discarding the late result"
        )
        for stored in await self._store.list_runs(job.id):
            if stored.id == run.id:
                return stored
        raise RunNotFoundError(run.id)

    # ── Stale runs ────────────────────────────────────────────────────────────

    async def reclaim_stale_runs(self, reference: datetime | None = None) -> list[ResearchRun]:
        """
        Fail runs that have been running longer than stale_run_after and
        release their jobs. No-op unless stale_run_after is configured.
        Jobs executing in this process are never reclaimed.
        """
        if self._stale_run_after is None:
            return []

        cutoff = (reference or utcnow()) - self._stale_run_after
        reclaimed: list[ResearchRun] = []

        for job in await self._store.list_jobs():
            if not job.is_running or job.id in self._in_flight:
                continue

            in_flight = [r for r in await self._store.list_runs(job.id) if not r.is_finished]
            if in_flight and in_flight[0].started_at > cutoff:
                continue
            if not in_flight and job.updated_at > cutoff:
                continue

            stale: list[ResearchRun] = []
            for run in in_flight:
                try:
                    stale.append(await self._store.complete_run(
                        run.id,
                        status=RunStatus.FAILED,
                        error=STALE_RUN_MESSAGE,
                    ))
                except RunAlreadyFinishedError:
                    logger.debug(f"Run {run.id} finished before it could be reclaimed")
            if in_flight and not stale:
                # Its owner finished in the meantime and has updated the job
                continue
            reclaimed.extend(stale)

            now = utcnow()
            await self._store.update_job_schedule(
                job.id,
                status=JobStatus.ERROR,
                error=STALE_RUN_MESSAGE,
                next_run_at=calculate_next_run_at(job.schedule, from_=now),
            )
            logger.warning(f"Reclaimed stale research job {job.query!r} (id={job.id})")

        return reclaimed

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _attach_metadata(
        brief: dict[str, Any], job: ResearchJob, started_at: datetime
    ) -> dict[str, Any]:
        return {
            **brief,
            "diseasesConsidered": brief.get("diseasesConsidered") or [],
            "metadata": {
                "jobId": job.id,
                "jobSchedule": job.schedule,
                "triggeredAt": to_iso(started_at),
            },
        }

    @staticmethod
    def _collect_warnings(brief: dict[str, Any]) -> list[SourceWarning]:
        warnings: list[SourceWarning] = []
        for result in brief.get("sourceResults") or []:
            if not isinstance(result, Mapping):
                continue
            for message in result.get("warnings") or []:
                warnings.append(SourceWarning(source_id=result.get("sourceId", ""), message=message))
        return warnings
