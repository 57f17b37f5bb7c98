"""
Research sources - one class per public knowledge source.

Each source turns a search term into a SourceResult. Lookups never
raise for upstream problems: HTTP errors, bad payloads and empty result
sets all become warnings on the returned SourceResult, so one source
going down only thins out the brief.

Sources:
    WikipediaSource        - REST page summary, a high-level overview
    SemanticScholarSource  - paper search, recent abstracts
    PubMedSource           - NCBI E-utilities, esearch then esummary
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from vigil.core.errors import ExecutorError
from vigil.research.base import SourceResult

logger = logging.getLogger(__name__)

# Failures a source reports as a warning instead of raising
LOOKUP_ERRORS = (httpx.HTTPError, ExecutorError, ValueError, KeyError, TypeError, AttributeError)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def get_json(client: httpx.AsyncClient, url: str, params: dict[str, Any] | None = None) -> Any:
    """GET and decode JSON; any non-200 status is an ExecutorError."""
    response = await client.get(url, params=params)
    if response.status_code != 200:
        raise ExecutorError(f"Request failed ({response.status_code}) for {response.request.url}")
    return response.json()


class ResearchSource(ABC):
    """Base class for a single knowledge source."""

    source_id: str = ""
    source_name: str = ""
    description: str = ""
    failure_message: str = "Unknown retrieval failure"

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def empty_result(self, term: str, warning: str | None = None) -> SourceResult:
        return SourceResult(
            search_term=term,
            source_id=self.source_id,
            source_name=self.source_name,
            fetched_at=now_iso(),
            warnings=[warning] if warning else [],
        )

    async def fetch(self, client: httpx.AsyncClient, term: str) -> SourceResult:
        """Look up one term. Upstream failures come back as a warning."""
        try:
            return await self._fetch(client, term)
        except LOOKUP_ERRORS as e:
            logger.debug(f"{self.source_name} lookup for {term!r} failed: {e}")
            return self.empty_result(term, str(e) or self.failure_message)

    @abstractmethod
    async def _fetch(self, client: httpx.AsyncClient, term: str) -> SourceResult:
        ...


class WikipediaSource(ResearchSource):
    source_id = "wikipedia"
    source_name = "Wikipedia Summary"
    description = "High-level public overview of the condition"
    failure_message = "Failed to retrieve summary"

    def __init__(self, base_url: str = "https://en.wikipedia.org/api/rest_v1") -> None:
        super().__init__(base_url)

    async def _fetch(self, client: httpx.AsyncClient, term: str) -> SourceResult:
        data = await get_json(client, f"{self._base_url}/page/summary/{quote(term, safe='')}")
        extract = data.get("extract") if isinstance(data, dict) else None
        if not extract:
            return self.empty_result(term, "No summary extract returned")

        urls = data.get("content_urls") or {}
        result = self.empty_result(term)
        result.items.append({
            "title": data.get("title") or term,
            "summary": extract,
            "url": (
                (urls.get("desktop") or {}).get("page")
                or (urls.get("mobile") or {}).get("page")
                or f"https://en.wikipedia.org/wiki/{quote(term)}"
            ),
            "publishedAt": data.get("timestamp"),
            "source": "Wikipedia",
        })
        return result


class SemanticScholarSource(ResearchSource):
    source_id = "semantic-scholar"
    source_name = "Semantic Scholar"
    description = "Recent academic papers and abstracts"
    failure_message = "Failed to query Semantic Scholar"

    MAX_PAPERS = 5
    FIELDS = "title,abstract,url,venue,year,authors"

    def __init__(self, base_url: str = "https://api.semanticscholar.org/graph/v1") -> None:
        super().__init__(base_url)

    async def _fetch(self, client: httpx.AsyncClient, term: str) -> SourceResult:
        data = await get_json(
            client,
            f"{self._base_url}/paper/search",
            params={"query": term, "limit": self.MAX_PAPERS, "fields": self.FIELDS},
        )

        result = self.empty_result(term)
        for paper in (data or {}).get("data") or []:
            year = paper.get("year")
            result.items.append({
                "title": paper.get("title") or term,
                "summary": (paper.get("abstract") or "").strip()
                or "No abstract provided. Consider reviewing the full paper for more detail.",
                "url": paper.get("url") or "",
                "publishedAt": str(year) if year else None,
                "authors": [a["name"] for a in paper.get("authors") or [] if a.get("name")],
                "source": paper.get("venue") or "Semantic Scholar",
                "extra": {"venue": paper.get("venue"), "year": year},
            })

        if not result.items:
            result.warnings.append("No papers returned")
        return result


class PubMedSource(ResearchSource):
    source_id = "pubmed"
    source_name = "PubMed"
    description = "Peer-reviewed medical literature from NIH"
    failure_message = "Failed to query PubMed"

    MAX_ARTICLES = 5

    def __init__(self, base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils") -> None:
        super().__init__(base_url)

    async def _fetch(self, client: httpx.AsyncClient, term: str) -> SourceResult:
        search = await get_json(
            client,
            f"{self._base_url}/esearch.fcgi",
            params={"db": "pubmed", "retmode": "json", "retmax": self.MAX_ARTICLES, "term": term},
        )
        ids = [str(i) for i in ((search or {}).get("esearchresult") or {}).get("idlist") or []]
        if not ids:
            return self.empty_result(term, "No PubMed articles found for this term")

        summary = await get_json(
            client,
            f"{self._base_url}/esummary.fcgi",
            params={"db": "pubmed", "retmode": "json", "id": ",".join(ids)},
        )
        entries = (summary or {}).get("result") or {}

        result = self.empty_result(term)
        for pmid in ids:
            entry = entries.get(pmid)
            if not entry:
                continue
            location = entry.get("elocationid") or ""
            result.items.append({
                "title": entry.get("title") or term,
                "summary": location
                or entry.get("sortfirstauthor")
                or "Summary unavailable. Open the PubMed record for details.",
                "url": location if location.startswith("http")
                else f"https://pubmed.ncbi.nlm.nih.gov/{entry.get('uid') or pmid}/",
                "publishedAt": entry.get("pubdate"),
                "authors": [a["name"] for a in entry.get("authors") or [] if a.get("name")],
                "source": "PubMed",
                "extra": {
                    "journal": entry.get("fulljournalname"),
                    "publicationType": entry.get("pubtype"),
                },
            })

        if not result.items:
            result.warnings.append("Unable to retrieve article summaries")
        return result
