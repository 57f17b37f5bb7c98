"""
Research Executor interface.

The scheduler treats research as an opaque async call: give it a query and
options, get back a ResearchResult. It only reads knowledge_gaps,
source_results[].warnings and diseases_considered; every other field is
passed through into the stored brief untouched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# Conditions that are frequently dismissed or misdiagnosed. Used both as
# the "similar diseases" expansion and as the default seed roster.
MISUNDERSTOOD_DISEASES: list[str] = [
    "Morgellons disease",
    "Chronic Lyme disease",
    "Post-treatment Lyme disease syndrome",
    "Myalgic encephalomyelitis/chronic fatigue syndrome",
    "Fibromyalgia",
    "Ehlers-Danlos syndrome",
    "Multiple chemical sensitivity",
    "Chronic inflammatory response syndrome",
    "Environmental toxicity syndrome",
]


@dataclass
class ResearchOptions:
    """Per-job knobs passed to the executor."""

    include_ai_summary: bool = True
    include_similar_diseases: bool = True
    additional_diseases: list[str] = field(default_factory=list)


@dataclass
class SourceResult:
    """What one source returned for one search term."""

    search_term: str
    source_id: str
    source_name: str = ""
    fetched_at: str = ""
    items: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "searchTerm": self.search_term,
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "fetchedAt": self.fetched_at,
            "items": list(self.items),
            "warnings": list(self.warnings),
        }


@dataclass
class ResearchResult:
    """The brief produced by one research execution."""

    query: str
    diseases_considered: list[str] = field(default_factory=list)
    source_results: list[SourceResult] = field(default_factory=list)
    aggregated_findings: list[str] = field(default_factory=list)
    knowledge_gaps: list[str] = field(default_factory=list)
    ai_summary: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "diseasesConsidered": list(self.diseases_considered),
            "sourceResults": [r.to_dict() for r in self.source_results],
            "aggregatedFindings": list(self.aggregated_findings),
            "knowledgeGaps": list(self.knowledge_gaps),
            "aiSummary": self.ai_summary,
        }


class ResearchExecutor(ABC):
    """
    Abstract base class for research backends.

    Implementations:
        LiteratureResearchExecutor - Wikipedia, Semantic Scholar and PubMed over httpx
        MockResearchExecutor - canned results for tests
    """

    @abstractmethod
    async def execute(self, query: str, options: ResearchOptions) -> ResearchResult:
        """Run the research. May raise; the agent records the failure."""
        ...

    async def close(self) -> None:
        """Release any held resources (HTTP clients, etc.)."""
        return None
