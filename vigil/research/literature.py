"""
LiteratureResearchExecutor - live research across public literature sources.

For each term (the query, plus the similar-disease roster and any
additional diseases when requested) every configured source is queried
in parallel: Wikipedia for an overview, Semantic Scholar for papers and
PubMed for peer-reviewed articles. Terms are processed one after
another. A failing source never fails the whole execution: it becomes
a warning on that source's SourceResult, and the agent surfaces those
warnings on the run.

When include_ai_summary is set and a summary model is configured, the
findings are condensed by an Ollama-compatible /api/generate endpoint.
A failed summary is logged and left out of the result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from vigil.core.errors import ValidationError
from vigil.research.base import (
    MISUNDERSTOOD_DISEASES,
    ResearchExecutor,
    ResearchOptions,
    ResearchResult,
    SourceResult,
)
from vigil.research.sources import (
    PubMedSource,
    ResearchSource,
    SemanticScholarSource,
    WikipediaSource,
)

logger = logging.getLogger(__name__)

MAX_FINDINGS = 25
MAX_SUMMARY_CHARS = 800
MAX_SNAPSHOT_SOURCES = 10
UNKNOWN_RETRIEVAL_FAILURE = "Unknown retrieval failure"


def _truncate(text: str) -> str:
    trimmed = text.strip()
    if len(trimmed) <= MAX_SUMMARY_CHARS:
        return trimmed
    return f"{trimmed[:MAX_SUMMARY_CHARS - 20]}..."


def aggregate_findings(results: list[SourceResult]) -> list[str]:
    """'title: summary' lines, de-duplicated case-insensitively, capped."""
    seen: set[str] = set()
    findings: list[str] = []
    for result in results:
        for item in result.items:
            summary = item.get("summary") or ""
            key = f"{item.get('title', '')}|{summary}".lower()
            if summary and key not in seen:
                seen.add(key)
                findings.append(f"{item.get('title', '')}: {_truncate(summary)}")
    return findings[:MAX_FINDINGS]


def detect_knowledge_gaps(diseases: list[str], results: list[SourceResult]) -> list[str]:
    """One gap per term with no items, plus one summarizing retrieval warnings."""
    gaps: list[str] = []
    for disease in diseases:
        has_insight = any(r.search_term == disease and r.items for r in results)
        if not has_insight:
            gaps.append(
                f"Limited public research retrieved for {disease}. Consider consulting "
                f"specialist forums, case studies, or patient-led research."
            )

    warnings: list[str] = []
    for result in results:
        for warning in result.warnings:
            if warning not in warnings:
                warnings.append(warning)
    if warnings:
        gaps.append(f"Warnings during retrieval: {'; '.join(warnings)}")

    return gaps


class LiteratureResearchExecutor(ResearchExecutor):
    """
    Research executor backed by Wikipedia, Semantic Scholar and PubMed.

    Usage:
        executor = LiteratureResearchExecutor()
        result = await executor.execute("Fibromyalgia", ResearchOptions())
        await executor.close()
    """

    def __init__(
        self,
        wikipedia_base_url: str = "https://en.wikipedia.org/api/rest_v1",
        semantic_scholar_base_url: str = "https://api.semanticscholar.org/graph/v1",
        pubmed_base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils",
        timeout: float = 20.0,
        user_agent: str = "VigilResearchAgent/0.1",
        summary_base_url: str = "http://localhost:11434",
        summary_model: str = "",
        similar_diseases: list[str] | None = None,
        sources: list[ResearchSource] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._sources = sources if sources is not None else [
            WikipediaSource(wikipedia_base_url),
            SemanticScholarSource(semantic_scholar_base_url),
            PubMedSource(pubmed_base_url),
        ]
        self._timeout = timeout
        self._user_agent = user_agent
        self._summary_base_url = summary_base_url.rstrip("/")
        self._summary_model = summary_model
        self._similar_diseases = (
            list(similar_diseases) if similar_diseases is not None
            else list(MISUNDERSTOOD_DISEASES)
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def sources(self) -> list[ResearchSource]:
        return list(self._sources)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent, "Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ── Execution ─────────────────────────────────────────────────────────────

    async def execute(self, query: str, options: ResearchOptions) -> ResearchResult:
        normalized = query.strip()
        if not normalized:
            raise ValidationError("Query is required for research agent")

        diseases = self._collect_terms(normalized, options)
        results: list[SourceResult] = []
        for term in diseases:
            results.extend(await self._fetch_term(term))

        findings = aggregate_findings(results)
        gaps = detect_knowledge_gaps(diseases, results)

        ai_summary = None
        if options.include_ai_summary and self._summary_model:
            ai_summary = await self._summarize(normalized, results, findings, gaps)

        logger.debug(
            f"Research for {normalized!r}: {len(diseases)} terms, "
            f"{len(findings)} findings, {len(gaps)} gaps"
        )
        return ResearchResult(
            query=normalized,
            diseases_considered=diseases,
            source_results=results,
            aggregated_findings=findings,
            knowledge_gaps=gaps,
            ai_summary=ai_summary,
        )

    def _collect_terms(self, query: str, options: ResearchOptions) -> list[str]:
        """Query first, then the similar roster and extras, de-duplicated in order."""
        terms = [query]
        if options.include_similar_diseases:
            terms.extend(self._similar_diseases)
        terms.extend(d.strip() for d in options.additional_diseases if d and d.strip())

        unique: list[str] = []
        for term in terms:
            if term not in unique:
                unique.append(term)
        return unique

    async def _fetch_term(self, term: str) -> list[SourceResult]:
        """Query every source for one term concurrently, in source order."""
        client = await self._get_client()
        outcomes = await asyncio.gather(
            *(source.fetch(client, term) for source in self._sources),
            return_exceptions=True,
        )

        results: list[SourceResult] = []
        for source, outcome in zip(self._sources, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"{source.source_name} failed unexpectedly for {term!r}: {outcome}")
                outcome = source.empty_result(term, UNKNOWN_RETRIEVAL_FAILURE)
            elif isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        return results

    async def _summarize(
        self,
        query: str,
        results: list[SourceResult],
        findings: list[str],
        gaps: list[str],
    ) -> str | None:
        prompt = self._build_summary_prompt(query, results, findings, gaps)
        payload: dict[str, Any] = {
            "model": self._summary_model,
            "prompt": prompt,
            "stream": False,
        }

        client = await self._get_client()
        try:
            response = await client.post(f"{self._summary_base_url}/api/generate", json=payload)
            response.raise_for_status()
            text = (response.json().get("response") or "").strip()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to build AI summary for {query!r}: {e}")
            return None
        return text or None

    @staticmethod
    def _build_summary_prompt(
        query: str,
        results: list[SourceResult],
        findings: list[str],
        gaps: list[str],
    ) -> str:
        condensed = "\n- ".join(findings[:12])
        gap_lines = "\n- ".join(gaps)
        snapshot = "\n".join(
            f"{r.source_name} ({r.search_term}): {_truncate(r.items[0].get('summary') or '')}"
            for r in [r for r in results if r.items][:MAX_SNAPSHOT_SOURCES]
        )
        return (
            "You are part of a research agent helping track misunderstood or "
            "misdiagnosed diseases for a patient-facing app.\n\n"
            f'Primary focus: "{query}"\n\n'
            f"Aggregated findings (top items):\n- {condensed or 'No findings available'}\n\n"
            f"Source snapshot:\n{snapshot or 'No detailed sources retrieved'}\n\n"
            f"Knowledge gaps:\n- {gap_lines or 'None recorded'}\n\n"
            "Produce a concise briefing with the following sections:\n"
            "1. Key clinical or observational themes (bullet list)\n"
            "2. Patient-reported experiences or patterns\n"
            "3. Hypothesized mechanisms or differential considerations "
            "(be clear these are hypotheses)\n"
            "4. Suggested follow-up research or questions for the patient to explore\n\n"
            "Keep the tone neutral, science-informed, and acknowledge uncertainty."
        )
