"""
Vigil - scheduler for recurring research jobs.

Public API:
    from vigil import ResearchAutonomyAgent, InMemoryResearchJobStore
"""

__version__ = "0.1.0"

# Core
from vigil.core.config import VigilConfig
from vigil.core.errors import (
    JobAlreadyRunningError,
    JobNotFoundError,
    RunAlreadyFinishedError,
    RunNotFoundError,
    ValidationError,
    VigilError,
)

# Scheduler
from vigil.scheduler.agent import ResearchAutonomyAgent
from vigil.scheduler.job import JobDefinition, JobStatus, ResearchJob, ResearchRun, RunStatus
from vigil.scheduler.memory import InMemoryResearchJobStore
from vigil.scheduler.schedule import calculate_next_run_at, is_supported_schedule
from vigil.scheduler.seeds import build_default_job_definitions
from vigil.scheduler.sqlite import SQLiteResearchJobStore
from vigil.scheduler.store import ResearchJobStore

# Research
from vigil.research.base import ResearchExecutor, ResearchOptions, ResearchResult

__all__ = [
    # Core
    "VigilConfig",
    "VigilError",
    "ValidationError",
    "JobNotFoundError",
    "RunNotFoundError",
    "JobAlreadyRunningError",
    "RunAlreadyFinishedError",
    # Scheduler
    "ResearchAutonomyAgent",
    "ResearchJobStore",
    "InMemoryResearchJobStore",
    "SQLiteResearchJobStore",
    "JobDefinition",
    "JobStatus",
    "ResearchJob",
    "ResearchRun",
    "RunStatus",
    "calculate_next_run_at",
    "is_supported_schedule",
    "build_default_job_definitions",
    # Research
    "ResearchExecutor",
    "ResearchOptions",
    "ResearchResult",
]
