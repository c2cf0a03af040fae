"""Abstract base class for the search engine that stores and ranks chunks.

The search engine owns both storage and ranking: kbchat upserts embedded
chunks into it and delegates hybrid (keyword + vector) ranking to it at
query time.  Scores it returns are treated as opaque.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from kbchat.models.document import DocumentChunk
from kbchat.models.rag import DocumentInfo, SearchResult


# Concrete implementations: MeilisearchProvider
# Located in: kbchat/providers/search/
class ISearchEngineProvider(ABC):
    """Contract for the chunk index used by ingestion and retrieval."""

    @abstractmethod
    async def ensure_index(self) -> bool:
        """Create and configure the index if it does not exist yet.

        Idempotent: when the index already exists nothing is changed.

        Returns
        -------
        bool
            ``True`` if the index was created by this call.

        Raises
        ------
        kbchat.utils.errors.SearchError
            If the engine cannot be reached or rejects the configuration.
        """

    @abstractmethod
    async def upsert_chunks(self, chunks: list[DocumentChunk]) -> int:
        """Insert or replace *chunks* in one bulk operation, keyed by chunk id.

        Returns
        -------
        int
            Number of chunks submitted.

        Raises
        ------
        kbchat.utils.errors.IndexingError
            If the engine rejects the batch.
        """

    @abstractmethod
    async def hybrid_search(
        self,
        query: str,
        limit: int = 5,
        filters: str | None = None,
    ) -> list[SearchResult]:
        """Run a hybrid keyword + semantic query.

        Parameters
        ----------
        query:
            Free-text user query.
        limit:
            Maximum number of hits.
        filters:
            Optional engine filter expression (e.g. ``document_type = "markdown"``).

        Returns
        -------
        list[SearchResult]
            Hits in descending relevance order.

        Raises
        ------
        kbchat.utils.errors.SearchError
            If the query fails.
        """

    @abstractmethod
    async def list_documents(self, limit: int = 1000) -> list[DocumentInfo]:
        """Return one summary per source document, aggregated from its chunks."""

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """Return raw index statistics (document count, indexing flag, field distribution)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return ``True`` if the engine answers its health check."""
