"""
Research jobs and runs - the core data model.

A ResearchJob is a named recurring (or manual-only) research task plus
its scheduling state. A ResearchRun is one execution attempt of a job.

Lifecycles:
    job: idle -> running -> idle | error   (error is not terminal)
    run: running -> completed | failed     (set once, immutable after)

Timestamps are timezone-aware UTC datetimes. to_dict() gives the JSON
wire form (camelCase keys, ISO-8601 timestamps).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def new_id() -> str:
    return str(uuid.uuid4())


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def from_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class SourceWarning:
    """A retrieval warning reported by one research source."""

    source_id: str
    message: str

    def to_dict(self) -> dict:
        return {"sourceId": self.source_id, "message": self.message}

    @classmethod
    def from_dict(cls, d: dict) -> "SourceWarning":
        return cls(source_id=d["sourceId"], message=d["message"])


@dataclass
class JobDefinition:
    """What a caller supplies to create a job. None = store default."""

    query: str
    include_similar_diseases: bool | None = None
    include_ai_summary: bool | None = None
    additional_diseases: list[str] | None = None
    schedule: str | None = None
    next_run_at: datetime | None = None


@dataclass
class ResearchJob:
    """A persistent research task and its current scheduling state."""

    query: str
    id: str = field(default_factory=new_id)
    status: JobStatus = JobStatus.IDLE
    include_similar_diseases: bool = True
    include_ai_summary: bool = True
    additional_diseases: list[str] = field(default_factory=list)
    schedule: str | None = None           # None = manual trigger only
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    next_run_at: datetime | None = None   # None = never picked up by due polling
    last_run_at: datetime | None = None
    error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.status is JobStatus.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "status": self.status.value,
            "includeSimilarDiseases": self.include_similar_diseases,
            "includeAiSummary": self.include_ai_summary,
            "additionalDiseases": list(self.additional_diseases),
            "schedule": self.schedule,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "nextRunAt": to_iso(self.next_run_at),
            "lastRunAt": to_iso(self.last_run_at),
            "error": self.error,
        }


@dataclass
class ResearchRun:
    """One execution attempt of a job."""

    job_id: str
    started_at: datetime
    id: str = field(default_factory=new_id)
    status: RunStatus = RunStatus.RUNNING
    completed_at: datetime | None = None
    triggered_manually: bool = False
    brief: dict[str, Any] | None = None
    knowledge_gaps: list[str] = field(default_factory=list)
    source_warnings: list[SourceWarning] = field(default_factory=list)
    error: str | None = None  # set iff status == FAILED

    @property
    def is_finished(self) -> bool:
        return self.status is not RunStatus.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "status": self.status.value,
            "triggeredManually": self.triggered_manually,
            "startedAt": to_iso(self.started_at),
            "completedAt": to_iso(self.completed_at),
            "knowledgeGaps": list(self.knowledge_gaps),
            "sourceWarnings": [w.to_dict() for w in self.source_warnings],
            "error": self.error,
            "brief": self.brief,
        }
