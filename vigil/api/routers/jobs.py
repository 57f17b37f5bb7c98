"""
Research Jobs Router

Thin adapters over ResearchAutonomyAgent and the job store. Domain
errors are mapped to status codes by the handlers in vigil.api.app:
ValidationError → 400, not found → 404, already running → 409.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from vigil.api.deps import get_agent, get_seed_interval, get_store
from vigil.api.schemas import (
    CreateJobRequest,
    RunDueRequest,
    SeedJobsRequest,
    as_utc,
    clean_strings,
)
from vigil.core.errors import JobNotFoundError, ValidationError
from vigil.scheduler.agent import ResearchAutonomyAgent
from vigil.scheduler.job import JobDefinition
from vigil.scheduler.seeds import build_default_job_definitions
from vigil.scheduler.store import ResearchJobStore

router = APIRouter(prefix="/api/research/jobs", tags=["research-jobs"])


@router.get("")
async def list_jobs(store: ResearchJobStore = Depends(get_store)) -> dict:
    """List all research jobs."""
    jobs = await store.list_jobs()
    return {"jobs": [job.to_dict() for job in jobs]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_job(
    req: CreateJobRequest,
    agent: ResearchAutonomyAgent = Depends(get_agent),
) -> dict:
    """Create a research job. nextRunAt defaults to now + schedule interval."""
    job = await agent.create_job(JobDefinition(
        query=req.query,
        include_similar_diseases=req.include_similar_diseases,
        include_ai_summary=req.include_ai_summary,
        additional_diseases=clean_strings(req.additional_diseases),
        schedule=req.schedule,
        next_run_at=as_utc(req.next_run_at),
    ))
    return {"job": job.to_dict()}


@router.post("/run")
async def run_due_jobs(
    req: Optional[RunDueRequest] = None,
    agent: ResearchAutonomyAgent = Depends(get_agent),
) -> dict:
    """Execute the jobs due at referenceDate (default now)."""
    reference = as_utc(req.reference_date) if req else None
    runs = await agent.run_due_jobs(reference)
    return {"runs": [run.to_dict() for run in runs]}


@router.post("/seed")
async def seed_jobs(
    req: Optional[SeedJobsRequest] = None,
    agent: ResearchAutonomyAgent = Depends(get_agent),
    default_interval: float = Depends(get_seed_interval),
) -> dict:
    """Create the default roster (or overrideQueries) if not already present."""
    req = req or SeedJobsRequest()
    if req.interval_minutes is not None and req.interval_minutes <= 0:
        raise ValidationError("intervalMinutes must be a positive number")

    definitions = build_default_job_definitions(
        interval_minutes=req.interval_minutes or default_interval,
        include_ai_summary=req.include_ai_summary is not False,
        include_similar_diseases=req.include_similar_diseases is not False,
        additional_diseases=clean_strings(req.additional_diseases),
        override_queries=clean_strings(req.override_queries),
        start_from=as_utc(req.start_from),
    )
    await agent.ensure_seed_jobs(definitions)

    jobs = await agent.store.list_jobs()
    return {
        "seededQueries": [d.query for d in definitions],
        "jobs": [job.to_dict() for job in jobs],
    }


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    include_runs: bool = Query(False, alias="includeRuns"),
    store: ResearchJobStore = Depends(get_store),
) -> dict:
    """Get one job, optionally with its run history (newest first)."""
    job = await store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)

    runs = await store.list_runs(job_id) if include_runs else []
    return {
        "job": job.to_dict(),
        "runs": [run.to_dict() for run in runs],
    }


@router.post("/{job_id}/run", status_code=status.HTTP_202_ACCEPTED)
async def trigger_job(
    job_id: str,
    agent: ResearchAutonomyAgent = Depends(get_agent),
) -> dict:
    """Run a job now regardless of its schedule."""
    run = await agent.trigger_job(job_id)
    return {"run": run.to_dict()}
