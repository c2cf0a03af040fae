"""Ingestion pipeline: **chunk -> embed -> index**.

:class:`IngestionPipeline` coordinates the chunker, the embedding provider,
the search engine and the task lifecycle without any of them knowing about
each other.  Both public entry points run the same job:

    1. TaskLifecycle.start          -- Pending -> Processing
    2. DocumentChunker              -- bounded, hierarchy-tagged chunks
    3. IEmbeddingProvider           -- one call per chunk, or per batch,
                                       recording progress after each
    4. ISearchEngineProvider        -- one bulk upsert of every chunk
    5. TaskLifecycle.succeed        -- progress 1.0

Any :class:`KBChatError` raised in steps 2-4 fails the task with its message
and ends the job.  The pipeline keeps no per-job state, so one instance
serves every worker.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from kbchat.interfaces.embedding_provider import IEmbeddingProvider
from kbchat.interfaces.search_engine_provider import ISearchEngineProvider
from kbchat.models.document import Document, DocumentChunk
from kbchat.models.rag import IngestionResult
from kbchat.models.task import TaskState
from kbchat.pipeline.task_lifecycle import TaskLifecycle
from kbchat.services.ingestion.chunker import DocumentChunker
from kbchat.utils.errors import EmbeddingError, KBChatError

logger = structlog.get_logger(logger_name=__name__)


class IngestionPipeline:
    """Runs ingestion jobs and keeps their task status current.

    Parameters
    ----------
    chunker:
        Splits documents and raw text into chunks.
    embedding_provider:
        Produces a vector per chunk.
    search_engine:
        Receives the embedded chunks in one bulk upsert.
    lifecycle:
        Records task transitions.
    embedding_batch_size:
        ``0`` embeds chunks one call at a time; ``N > 0`` sends batches of
        ``N`` and records progress after each batch.
    """

    def __init__(
        self,
        chunker: DocumentChunker,
        embedding_provider: IEmbeddingProvider,
        search_engine: ISearchEngineProvider,
        lifecycle: TaskLifecycle,
        embedding_batch_size: int = 0,
    ) -> None:
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._search_engine = search_engine
        self._lifecycle = lifecycle
        self._batch_size = max(0, embedding_batch_size)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_document(self, document: Document, task_id: str) -> IngestionResult:
        """Ingest a parsed markdown document under *task_id*."""
        return await self._run(
            task_id,
            document.title,
            lambda: self._chunker.chunk_document(document),
        )

    async def process_text(self, content: str, title: str, task_id: str) -> IngestionResult:
        """Ingest raw text under *task_id*, using *title* as its source name."""
        return await self._run(
            task_id,
            title,
            lambda: self._chunker.chunk_text(content, title),
        )

    # ------------------------------------------------------------------
    # Job
    # ------------------------------------------------------------------

    async def _run(
        self,
        task_id: str,
        title: str,
        chunk_fn: Callable[[], list[DocumentChunk]],
    ) -> IngestionResult:
        start = time.monotonic()

        try:
            await self._lifecycle.start(task_id)
            chunks = chunk_fn()
            if chunks:
                chunks = await self._embed_chunks(task_id, chunks)
                await self._search_engine.upsert_chunks(chunks)
        except KBChatError as exc:
            await self._lifecycle.fail(task_id, str(exc))
            logger.warning(
                "ingestion_failed",
                task_id=task_id,
                title=title,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return IngestionResult(
                task_id=task_id,
                title=title,
                status=TaskState.FAILED.value,
                ingestion_time=round(time.monotonic() - start, 3),
                error=str(exc),
            )
        except Exception as exc:
            await self._lifecycle.fail(task_id, f"Unexpected error: {exc}")
            raise

        await self._lifecycle.succeed(task_id)
        result = IngestionResult(
            task_id=task_id,
            title=title,
            status=TaskState.SUCCEEDED.value,
            chunks_created=len(chunks),
            total_tokens=sum(chunk.token_count for chunk in chunks),
            ingestion_time=round(time.monotonic() - start, 3),
        )
        logger.info(
            "ingestion_complete",
            task_id=task_id,
            title=title,
            chunks=result.chunks_created,
            tokens=result.total_tokens,
            seconds=result.ingestion_time,
        )
        return result

    async def _embed_chunks(
        self, task_id: str, chunks: list[DocumentChunk]
    ) -> list[DocumentChunk]:
        """Attach an embedding to every chunk, recording progress as it goes."""
        total = len(chunks)
        step = self._batch_size or 1
        embedded: list[DocumentChunk] = []

        for start in range(0, total, step):
            batch = chunks[start : start + step]
            if self._batch_size:
                vectors = await self._embedding_provider.embed([c.content for c in batch])
            else:
                vectors = [await self._embedding_provider.embed_single(batch[0].content)]
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    message=f"Expected {len(batch)} embeddings, got {len(vectors)}",
                    provider_name=self._embedding_provider.get_provider_name(),
                )
            embedded.extend(
                chunk.model_copy(update={"embedding": vector})
                for chunk, vector in zip(batch, vectors)
            )
            await self._lifecycle.record_embedding_progress(task_id, len(embedded), total)

        return embedded
