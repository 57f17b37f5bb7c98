"""Tests for the ResearchJobStore contract, run against every backend."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from vigil.core.errors import (
    JobAlreadyRunningError,
    JobNotFoundError,
    RunAlreadyFinishedError,
    RunNotFoundError,
)
from vigil.scheduler.job import JobDefinition, JobStatus, RunStatus, SourceWarning
from vigil.scheduler.memory import InMemoryResearchJobStore
from vigil.scheduler.sqlite import SQLiteResearchJobStore

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        store = InMemoryResearchJobStore()
    else:
        store = SQLiteResearchJobStore(tmp_path / "research.db")
        await store.initialize()
    yield store
    await store.close()


@pytest.mark.asyncio
class TestCreateJob:
    async def test_defaults(self, any_store):
        job = await any_store.create_job(JobDefinition(query="Fibromyalgia"))
        assert job.status is JobStatus.IDLE
        assert job.include_similar_diseases is True
        assert job.include_ai_summary is True
        assert job.additional_diseases == []
        assert job.schedule is None
        assert job.next_run_at is None
        assert job.last_run_at is None
        assert job.error is None
        assert job.created_at == job.updated_at

    async def test_schedule_sets_first_run(self, any_store):
        before = datetime.now(timezone.utc)
        job = await any_store.create_job(
            JobDefinition(query="Fibromyalgia", schedule="interval:60")
        )
        assert job.next_run_at >= before + timedelta(minutes=60)
        assert job.next_run_at <= datetime.now(timezone.utc) + timedelta(minutes=60)

    async def test_explicit_next_run_wins(self, any_store):
        job = await any_store.create_job(
            JobDefinition(query="Fibromyalgia", schedule="interval:60", next_run_at=T0)
        )
        assert job.next_run_at == T0

    async def test_ids_unique(self, any_store):
        a = await any_store.create_job(JobDefinition(query="A"))
        b = await any_store.create_job(JobDefinition(query="B"))
        assert a.id != b.id

    async def test_get_and_list(self, any_store):
        job = await any_store.create_job(
            JobDefinition(query="Morgellons disease", additional_diseases=["Delusional parasitosis"])
        )
        found = await any_store.get_job(job.id)
        assert found.query == "Morgellons disease"
        assert found.additional_diseases == ["Delusional parasitosis"]
        assert [j.id for j in await any_store.list_jobs()] == [job.id]

    async def test_get_missing_returns_none(self, any_store):
        assert await any_store.get_job("ghost") is None


@pytest.mark.asyncio
class TestFindDueJobs:
    async def test_due_ordered_by_next_run(self, any_store):
        late = await any_store.create_job(
            JobDefinition(query="late", next_run_at=T0 - timedelta(minutes=5))
        )
        early = await any_store.create_job(
            JobDefinition(query="early", next_run_at=T0 - timedelta(minutes=30))
        )
        await any_store.create_job(JobDefinition(query="future", next_run_at=T0 + timedelta(minutes=1)))
        await any_store.create_job(JobDefinition(query="manual"))

        due = await any_store.find_due_jobs(T0)
        assert [j.id for j in due] == [early.id, late.id]

    async def test_boundary_inclusive(self, any_store):
        job = await any_store.create_job(JobDefinition(query="exact", next_run_at=T0))
        assert [j.id for j in await any_store.find_due_jobs(T0)] == [job.id]

    async def test_running_jobs_excluded(self, any_store):
        job = await any_store.create_job(JobDefinition(query="busy", next_run_at=T0))
        await any_store.start_run(job.id, started_at=T0)
        assert await any_store.find_due_jobs(T0) == []

    async def test_error_jobs_still_due(self, any_store):
        job = await any_store.create_job(JobDefinition(query="flaky", next_run_at=T0))
        await any_store.update_job_schedule(job.id, status=JobStatus.ERROR, error="boom")
        assert [j.id for j in await any_store.find_due_jobs(T0)] == [job.id]


@pytest.mark.asyncio
class TestUpdateJobSchedule:
    async def test_partial_update(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x", schedule="interval:60"))
        updated = await any_store.update_job_schedule(job.id, error="boom")
        assert updated.error == "boom"
        assert updated.next_run_at == job.next_run_at
        assert updated.status is JobStatus.IDLE

    async def test_explicit_none_clears(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x", next_run_at=T0))
        updated = await any_store.update_job_schedule(job.id, next_run_at=None)
        assert updated.next_run_at is None
        assert (await any_store.get_job(job.id)).next_run_at is None

    async def test_updated_at_refreshed(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        later = job.updated_at + timedelta(seconds=5)
        updated = await any_store.update_job_schedule(job.id, updated_at=later)
        assert updated.updated_at == later
        assert updated.created_at == job.created_at

    async def test_unknown_job_raises(self, any_store):
        with pytest.raises(JobNotFoundError):
            await any_store.update_job_schedule("ghost", status=JobStatus.IDLE)


@pytest.mark.asyncio
class TestRuns:
    async def test_start_run_marks_job_running(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        run = await any_store.start_run(job.id, started_at=T0, triggered_manually=True)
        assert run.status is RunStatus.RUNNING
        assert run.job_id == job.id
        assert run.started_at == T0
        assert run.triggered_manually is True
        assert run.completed_at is None
        assert (await any_store.get_job(job.id)).status is JobStatus.RUNNING

    async def test_start_run_refuses_running_job(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        await any_store.start_run(job.id, started_at=T0)
        with pytest.raises(JobAlreadyRunningError):
            await any_store.start_run(job.id, started_at=T0 + timedelta(seconds=1))
        assert len(await any_store.list_runs(job.id)) == 1

    async def test_start_run_unknown_job(self, any_store):
        with pytest.raises(JobNotFoundError):
            await any_store.start_run("ghost", started_at=T0)

    async def test_complete_run(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        run = await any_store.start_run(job.id, started_at=T0)
        done = await any_store.complete_run(
            run.id,
            status=RunStatus.COMPLETED,
            completed_at=T0 + timedelta(minutes=1),
            brief={"query": "x", "knowledgeGaps": ["gap"]},
            knowledge_gaps=["gap"],
            source_warnings=[SourceWarning(source_id="wikipedia", message="slow")],
        )
        assert done.status is RunStatus.COMPLETED
        assert done.completed_at == T0 + timedelta(minutes=1)
        assert done.brief["knowledgeGaps"] == ["gap"]
        assert done.source_warnings == [SourceWarning(source_id="wikipedia", message="slow")]

        # Completing a run leaves the job alone
        assert (await any_store.get_job(job.id)).status is JobStatus.RUNNING

    async def test_complete_run_defaults_completed_at(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        run = await any_store.start_run(job.id, started_at=T0)
        done = await any_store.complete_run(run.id, status=RunStatus.FAILED, error="boom")
        assert done.completed_at is not None
        assert done.error == "boom"

    async def test_complete_unknown_run(self, any_store):
        with pytest.raises(RunNotFoundError):
            await any_store.complete_run("ghost", status=RunStatus.COMPLETED)

    async def test_finished_run_cannot_be_completed_again(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        run = await any_store.start_run(job.id, started_at=T0)
        await any_store.complete_run(run.id, status=RunStatus.FAILED, error="abandoned")

        with pytest.raises(RunAlreadyFinishedError):
            await any_store.complete_run(run.id, status=RunStatus.COMPLETED, brief={"query": "x"})

        (stored,) = await any_store.list_runs(job.id)
        assert stored.status is RunStatus.FAILED
        assert stored.error == "abandoned"
        assert stored.brief is None

    async def test_list_runs_newest_first(self, any_store):
        job = await any_store.create_job(JobDefinition(query="x"))
        first = await any_store.start_run(job.id, started_at=T0)
        await any_store.complete_run(first.id, status=RunStatus.COMPLETED)
        await any_store.update_job_schedule(job.id, status=JobStatus.IDLE)
        second = await any_store.start_run(job.id, started_at=T0 + timedelta(hours=1))

        assert [r.id for r in await any_store.list_runs(job.id)] == [second.id, first.id]

    async def test_list_runs_unknown_job_empty(self, any_store):
        assert await any_store.list_runs("ghost") == []
