"""Retrieval: hybrid search plus context assembly for the LLM prompt.

Ranking is entirely the search engine's job; this service only asks for
the top hits and renders them into a numbered context block.  The numbers
in the block (``[Source 1]``, ``[Source 2]``, ...) follow the order of the
returned list, so the citations the model writes line up with the sources
the client receives.
"""

from __future__ import annotations

import structlog

from kbchat.interfaces.search_engine_provider import ISearchEngineProvider
from kbchat.models.rag import SearchResult

logger = structlog.get_logger(logger_name=__name__)


def build_context(results: list[SearchResult]) -> str:
    """Render *results* as numbered source blocks, in ranked order.

    Each block looks like::

        [Source 1: guide.md]
        Section: Setup
        Subsection: Install
        Content: ...
        Relevance Score: 0.873
        ---

    Heading lines are omitted when the chunk has no heading at that level.
    """
    blocks: list[str] = []
    for position, result in enumerate(results, start=1):
        source = result.source_file or result.metadata.title or result.id
        lines = [f"[Source {position}: {source}]"]
        if result.hierarchy_lvl1:
            lines.append(f"Section: {result.hierarchy_lvl1}")
        if result.hierarchy_lvl2:
            lines.append(f"Subsection: {result.hierarchy_lvl2}")
        if result.hierarchy_lvl3:
            lines.append(f"Sub-subsection: {result.hierarchy_lvl3}")
        lines.append(f"Content: {result.content}")
        lines.append(f"Relevance Score: {result.score:.3f}")
        lines.append("---")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class RetrievalService:
    """Fetches ranked chunks for a query and assembles the prompt context.

    Parameters
    ----------
    search_engine:
        The hybrid-search backend.
    default_limit:
        Number of hits requested when the caller does not say.
    """

    def __init__(self, search_engine: ISearchEngineProvider, default_limit: int = 5) -> None:
        self._search_engine = search_engine
        self._default_limit = default_limit

    async def retrieve(
        self,
        query: str,
        limit: int | None = None,
        filters: str | None = None,
    ) -> list[SearchResult]:
        """Return the top hits for *query* in the engine's ranking order."""
        results = await self._search_engine.hybrid_search(
            query,
            limit=limit or self._default_limit,
            filters=filters,
        )
        logger.info(
            "retrieval_complete",
            query_len=len(query),
            results=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    async def retrieve_with_context(
        self,
        query: str,
        limit: int | None = None,
        filters: str | None = None,
    ) -> tuple[list[SearchResult], str]:
        """Return ``(results, context)`` where *context* numbers results from 1."""
        results = await self.retrieve(query, limit=limit, filters=filters)
        return results, build_context(results)
