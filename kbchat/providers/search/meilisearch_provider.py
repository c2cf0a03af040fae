"""Meilisearch search engine adapter.

Implements :class:`ISearchEngineProvider` against the Meilisearch REST API
using a shared ``httpx.AsyncClient``.  Chunks are stored with their
metadata flattened into top-level fields (so they can be filtered and
searched) plus a nested ``metadata`` object, and with the vectors computed
during ingestion under ``_vectors`` so Meilisearch does not re-embed them.

Write operations in Meilisearch are asynchronous: the API answers
``202 Accepted`` with a ``taskUid`` and the work happens later.  Index
creation and document upserts therefore poll ``/tasks/{uid}`` until the
task settles, so a rejected batch surfaces as an :class:`IndexingError`
instead of being lost.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
import structlog

from kbchat.interfaces.search_engine_provider import ISearchEngineProvider
from kbchat.models.document import DocumentChunk, DocumentMetadata
from kbchat.models.rag import DocumentInfo, SearchResult
from kbchat.utils.errors import IndexingError, KBChatError, SearchError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "meilisearch"
_TASK_POLL_INTERVAL = 0.1
_LISTING_FIELDS = "id,title,source_file,created_at,chunk_index"


class MeilisearchProvider(ISearchEngineProvider):
    """Chunk index backed by a Meilisearch instance.

    Parameters
    ----------
    http_client:
        Shared async HTTP client; its lifecycle is owned by the caller.
    base_url:
        Meilisearch URL, e.g. ``http://localhost:7700``.
    index_config:
        The ``search_index`` section of ``config/config.yaml``: ``uid``,
        ``primary_key``, ``embedder``, ``semantic_ratio`` and the
        ``settings`` block applied when the index is first created.
    api_key:
        Master or API key; sent as a bearer token when non-empty.
    task_timeout:
        Seconds to wait for an asynchronous Meilisearch task to settle.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        index_config: dict[str, Any],
        api_key: str = "",
        task_timeout: float = 30.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._uid = index_config.get("uid", "rag_documents")
        self._primary_key = index_config.get("primary_key", "id")
        self._embedder = index_config.get("embedder", "default")
        self._semantic_ratio = float(index_config.get("semantic_ratio", 0.5))
        self._index_settings: dict[str, Any] = index_config.get("settings", {})
        self._task_timeout = task_timeout
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    # ------------------------------------------------------------------
    # ISearchEngineProvider implementation
    # ------------------------------------------------------------------

    async def ensure_index(self) -> bool:
        response = await self._request("GET", f"/indexes/{self._uid}", error_cls=SearchError)
        if response.status_code == 200:
            logger.info("search_index_exists", index=self._uid)
            return False
        if response.status_code != 404:
            raise SearchError(
                message=f"Unexpected status {response.status_code} checking index {self._uid}",
                provider_name=_PROVIDER_NAME,
            )

        created = await self._request(
            "POST",
            "/indexes",
            error_cls=SearchError,
            json={"uid": self._uid, "primaryKey": self._primary_key},
        )
        await self._wait_for_task(self._task_uid(created, SearchError), SearchError)

        if self._index_settings:
            configured = await self._request(
                "PATCH",
                f"/indexes/{self._uid}/settings",
                error_cls=SearchError,
                json=self._index_settings,
            )
            await self._wait_for_task(self._task_uid(configured, SearchError), SearchError)

        logger.info("search_index_created", index=self._uid, embedder=self._embedder)
        return True

    async def upsert_chunks(self, chunks: list[DocumentChunk]) -> int:
        if not chunks:
            return 0

        documents = [self._chunk_to_document(chunk) for chunk in chunks]
        response = await self._request(
            "POST",
            f"/indexes/{self._uid}/documents",
            error_cls=IndexingError,
            params={"primaryKey": self._primary_key},
            json=documents,
        )
        await self._wait_for_task(self._task_uid(response, IndexingError), IndexingError)

        logger.info(
            "chunks_indexed",
            index=self._uid,
            count=len(documents),
            source_file=chunks[0].source_file,
        )
        return len(documents)

    async def hybrid_search(
        self,
        query: str,
        limit: int = 5,
        filters: str | None = None,
    ) -> list[SearchResult]:
        payload: dict[str, Any] = {
            "q": query,
            "limit": limit,
            "hybrid": {"semanticRatio": self._semantic_ratio, "embedder": self._embedder},
            "showRankingScore": True,
        }
        if filters:
            payload["filter"] = filters

        response = await self._request(
            "POST",
            f"/indexes/{self._uid}/search",
            error_cls=SearchError,
            json=payload,
        )
        self._raise_for_status(response, SearchError)

        hits = response.json().get("hits", [])
        results = [self._hit_to_result(hit) for hit in hits]
        logger.debug("hybrid_search", query_len=len(query), limit=limit, hits=len(results))
        return results

    async def list_documents(self, limit: int = 1000) -> list[DocumentInfo]:
        response = await self._request(
            "GET",
            f"/indexes/{self._uid}/documents",
            error_cls=SearchError,
            params={"limit": limit, "fields": _LISTING_FIELDS},
        )
        self._raise_for_status(response, SearchError)

        grouped: dict[str, dict[str, Any]] = {}
        for doc in response.json().get("results", []):
            source = doc.get("source_file") or doc.get("title") or doc.get("id", "")
            entry = grouped.setdefault(
                source,
                {"title": doc.get("title") or source, "created_at": doc.get("created_at"), "count": 0},
            )
            entry["count"] += 1
            created_at = doc.get("created_at")
            if created_at and (entry["created_at"] is None or created_at < entry["created_at"]):
                entry["created_at"] = created_at

        return [
            DocumentInfo(
                id=source,
                title=entry["title"],
                status="indexed",
                created_at=entry["created_at"],
                chunk_count=entry["count"],
            )
            for source, entry in grouped.items()
        ]

    async def get_stats(self) -> dict[str, Any]:
        response = await self._request("GET", f"/indexes/{self._uid}/stats", error_cls=SearchError)
        self._raise_for_status(response, SearchError)
        return response.json()

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    async def is_available(self) -> bool:
        try:
            response = await self._http.get(f"{self._base_url}/health", headers=self._headers)
        except httpx.HTTPError:
            return False
        return response.status_code == 200 and response.json().get("status") == "available"

    # ------------------------------------------------------------------
    # Document mapping
    # ------------------------------------------------------------------

    def _chunk_to_document(self, chunk: DocumentChunk) -> dict[str, Any]:
        meta = chunk.metadata
        document: dict[str, Any] = {
            "id": chunk.id,
            "content": chunk.content,
            "title": meta.title,
            "author": meta.author,
            "document_type": meta.document_type,
            "created_at": meta.created_at,
            "updated_at": meta.updated_at,
            "tags": list(meta.tags),
            "source_file": chunk.source_file,
            "chunk_index": chunk.chunk_index,
            "hierarchy_lvl1": chunk.hierarchy_lvl1,
            "hierarchy_lvl2": chunk.hierarchy_lvl2,
            "hierarchy_lvl3": chunk.hierarchy_lvl3,
            "metadata": meta.model_dump(),
        }
        if chunk.embedding is not None:
            document["_vectors"] = {
                self._embedder: {"embeddings": chunk.embedding, "regenerate": False},
            }
        return document

    @staticmethod
    def _hit_to_result(hit: dict[str, Any]) -> SearchResult:
        raw_meta = hit.get("metadata")
        if isinstance(raw_meta, dict):
            metadata = DocumentMetadata.model_validate(raw_meta)
        else:
            metadata = DocumentMetadata(
                title=hit.get("title"),
                author=hit.get("author"),
                tags=hit.get("tags") or [],
                document_type=hit.get("document_type"),
                created_at=hit.get("created_at"),
                updated_at=hit.get("updated_at"),
            )
        return SearchResult(
            id=str(hit.get("id", "")),
            content=hit.get("content", ""),
            metadata=metadata,
            hierarchy_lvl1=hit.get("hierarchy_lvl1"),
            hierarchy_lvl2=hit.get("hierarchy_lvl2"),
            hierarchy_lvl3=hit.get("hierarchy_lvl3"),
            chunk_index=int(hit.get("chunk_index") or 0),
            source_file=hit.get("source_file") or "",
            score=float(hit.get("_rankingScore") or 0.0),
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[KBChatError],
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, wrapping transport failures in *error_cls*."""
        try:
            return await self._http.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise error_cls(
                message=f"Meilisearch {method} {path} failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, error_cls: type[KBChatError]) -> None:
        if response.is_success:
            return
        try:
            detail = response.json().get("message", response.text)
        except ValueError:
            detail = response.text
        raise error_cls(
            message=f"Meilisearch returned {response.status_code}: {detail}",
            provider_name=_PROVIDER_NAME,
        )

    def _task_uid(self, response: httpx.Response, error_cls: type[KBChatError]) -> int:
        self._raise_for_status(response, error_cls)
        return int(response.json()["taskUid"])

    async def _wait_for_task(self, task_uid: int, error_cls: type[KBChatError]) -> None:
        """Poll ``/tasks/{uid}`` until the task succeeds, fails, or times out."""
        deadline = time.monotonic() + self._task_timeout
        while True:
            response = await self._request("GET", f"/tasks/{task_uid}", error_cls=error_cls)
            self._raise_for_status(response, error_cls)
            task = response.json()
            status = task.get("status")
            if status == "succeeded":
                return
            if status in ("failed", "canceled"):
                error = task.get("error") or {}
                raise error_cls(
                    message=f"Meilisearch task {task_uid} {status}: {error.get('message', 'unknown error')}",
                    provider_name=_PROVIDER_NAME,
                )
            if time.monotonic() >= deadline:
                raise error_cls(
                    message=f"Meilisearch task {task_uid} still {status} after {self._task_timeout}s",
                    provider_name=_PROVIDER_NAME,
                )
            await asyncio.sleep(_TASK_POLL_INTERVAL)
