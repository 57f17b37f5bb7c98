"""
Request bodies for the research jobs API.

Field names on the wire are camelCase; responses are built from
ResearchJob.to_dict() / ResearchRun.to_dict().
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps from clients are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateJobRequest(_Request):
    query: str = ""
    schedule: Optional[str] = None
    include_similar_diseases: Optional[bool] = Field(None, alias="includeSimilarDiseases")
    include_ai_summary: Optional[bool] = Field(None, alias="includeAiSummary")
    additional_diseases: Optional[list[str]] = Field(None, alias="additionalDiseases")
    next_run_at: Optional[datetime] = Field(None, alias="nextRunAt")


class RunDueRequest(_Request):
    reference_date: Optional[datetime] = Field(None, alias="referenceDate")


class SeedJobsRequest(_Request):
    interval_minutes: Optional[float] = Field(None, alias="intervalMinutes")
    include_ai_summary: Optional[bool] = Field(None, alias="includeAiSummary")
    include_similar_diseases: Optional[bool] = Field(None, alias="includeSimilarDiseases")
    additional_diseases: Optional[list[str]] = Field(None, alias="additionalDiseases")
    override_queries: Optional[list[str]] = Field(None, alias="overrideQueries")
    start_from: Optional[datetime] = Field(None, alias="startFrom")


def clean_strings(values: Optional[list[str]]) -> Optional[list[str]]:
    """Trim entries and drop blanks; None when nothing is left."""
    if not values:
        return None
    cleaned = [v.strip() for v in values if v and v.strip()]
    return cleaned or None
