"""
Seed roster - default research jobs, one per tracked condition.

Every seeded job shares the same interval schedule and first run time.
Pass the result to ResearchAutonomyAgent.ensure_seed_jobs(), which skips
queries that already exist, so seeding is safe to repeat.
"""

from __future__ import annotations

from datetime import datetime

from vigil.core.errors import ValidationError
from vigil.research.base import MISUNDERSTOOD_DISEASES
from vigil.scheduler.job import JobDefinition
from vigil.scheduler.schedule import calculate_next_run_at, interval_schedule, utcnow

DEFAULT_INTERVAL_MINUTES = 24 * 60  # once per day


def build_default_job_definitions(
    interval_minutes: int | float = DEFAULT_INTERVAL_MINUTES,
    include_ai_summary: bool = True,
    include_similar_diseases: bool = True,
    additional_diseases: list[str] | None = None,
    override_queries: list[str] | None = None,
    start_from: datetime | None = None,
) -> list[JobDefinition]:
    """
    Build one JobDefinition per condition.

    override_queries replaces the default roster when non-empty.
    The first run of every job is start_from (default now) + interval.
    """
    if interval_minutes <= 0:
        raise ValidationError("intervalMinutes must be a positive number")

    conditions = [q.strip() for q in (override_queries or []) if q and q.strip()]
    if not conditions:
        conditions = list(MISUNDERSTOOD_DISEASES)

    schedule = interval_schedule(interval_minutes)
    next_run_at = calculate_next_run_at(schedule, from_=start_from or utcnow())

    return [
        JobDefinition(
            query=condition,
            include_ai_summary=include_ai_summary,
            include_similar_diseases=include_similar_diseases,
            additional_diseases=list(additional_diseases) if additional_diseases else None,
            schedule=schedule,
            next_run_at=next_run_at,
        )
        for condition in conditions
    ]
