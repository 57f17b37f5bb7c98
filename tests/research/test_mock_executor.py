"""Tests for the Mock research executor."""

import pytest

from vigil.research.base import ResearchOptions, ResearchResult
from vigil.research.mock import MockResearchExecutor


@pytest.mark.asyncio
async def test_default_result_echoes_query():
    """Mock returns a result built from the query when nothing is queued."""
    mock = MockResearchExecutor()
    result = await mock.execute("Fibromyalgia", ResearchOptions(additional_diseases=["ME/CFS"]))

    assert result.query == "Fibromyalgia"
    assert result.diseases_considered == ["Fibromyalgia", "ME/CFS"]
    assert [r.search_term for r in result.source_results] == ["Fibromyalgia", "ME/CFS"]
    assert result.knowledge_gaps == []


@pytest.mark.asyncio
async def test_queued_items_in_order():
    """Queued results and errors are consumed first in, first out."""
    mock = MockResearchExecutor()
    mock.set_result(ResearchResult(query="first", knowledge_gaps=["gap"]))
    mock.set_error(RuntimeError("offline"))

    first = await mock.execute("x", ResearchOptions())
    assert first.query == "first"

    with pytest.raises(RuntimeError, match="offline"):
        await mock.execute("x", ResearchOptions())

    third = await mock.execute("x", ResearchOptions())
    assert third.query == "x"


@pytest.mark.asyncio
async def test_tracks_calls():
    mock = MockResearchExecutor()
    options = ResearchOptions(include_ai_summary=False)
    await mock.execute("a", ResearchOptions())
    await mock.execute("b", options)

    assert mock.call_count == 2
    assert mock.last_query == "b"
    assert mock.last_options is options
    assert [q for q, _ in mock.calls] == ["a", "b"]


def test_result_to_dict_is_camel_case():
    result = ResearchResult(query="x", diseases_considered=["x"], ai_summary="brief")
    data = result.to_dict()

    assert data["diseasesConsidered"] == ["x"]
    assert data["aiSummary"] == "brief"
    assert set(data) == {
        "query", "diseasesConsidered", "sourceResults",
        "aggregatedFindings", "knowledgeGaps", "aiSummary",
    }
