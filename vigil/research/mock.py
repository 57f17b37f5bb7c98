"""
Mock Research Executor - for testing.

Returns configurable results without making any network calls.
Tracks all calls for test assertions.
"""

from __future__ import annotations

import asyncio

from vigil.research.base import ResearchExecutor, ResearchOptions, ResearchResult, SourceResult


class MockResearchExecutor(ResearchExecutor):
    """
    Mock executor that returns pre-configured results.

    Usage in tests:
        mock = MockResearchExecutor()
        mock.set_result(ResearchResult(query="x", knowledge_gaps=["gap"]))
        mock.set_error(RuntimeError("source offline"))

        result = await mock.execute("x", ResearchOptions())
        assert mock.last_query == "x"

    Queued results and errors are consumed in order; once the queue is
    empty a default result echoing the query is returned.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay
        self._queue: list[ResearchResult | BaseException] = []

        # Call tracking
        self.call_count: int = 0
        self.last_query: str | None = None
        self.last_options: ResearchOptions | None = None
        self.calls: list[tuple[str, ResearchOptions]] = []

    def set_result(self, result: ResearchResult) -> None:
        """Queue a result for the next execute() call."""
        self._queue.append(result)

    def set_error(self, error: BaseException) -> None:
        """Queue an exception to raise on the next execute() call."""
        self._queue.append(error)

    async def execute(self, query: str, options: ResearchOptions) -> ResearchResult:
        self.call_count += 1
        self.last_query = query
        self.last_options = options
        self.calls.append((query, options))

        if self._delay:
            await asyncio.sleep(self._delay)

        if self._queue:
            item = self._queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item

        return self._default_result(query, options)

    @staticmethod
    def _default_result(query: str, options: ResearchOptions) -> ResearchResult:
        diseases = [query, *options.additional_diseases]
        return ResearchResult(
            query=query,
            diseases_considered=diseases,
            source_results=[
                SourceResult(search_term=d, source_id="mock", source_name="Mock")
                for d in diseases
            ],
        )
