"""Unit tests for IngestionPipeline -- chunk, embed, index, and task tracking."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from kbchat.models.document import DocumentChunk
from kbchat.models.task import TaskState
from kbchat.pipeline.task_lifecycle import TaskLifecycle
from kbchat.providers.task_store.memory_task_store import MemoryTaskStore
from kbchat.services.ingestion.chunker import DocumentChunker
from kbchat.services.ingestion.parser import MarkdownParser
from kbchat.services.ingestion.pipeline import IngestionPipeline
from kbchat.utils.errors import EmbeddingError, IndexingError

# Four paragraphs of four words; chunk_size=4 gives exactly four chunks.
_FOUR_CHUNK_TEXT = "\n\n".join(f"alpha{i} beta gamma delta" for i in range(4))


def _pipeline(
    lifecycle: TaskLifecycle,
    embedding: MagicMock,
    search: MagicMock,
    batch_size: int = 0,
) -> IngestionPipeline:
    return IngestionPipeline(
        chunker=DocumentChunker(chunk_size=4, overlap=0),
        embedding_provider=embedding,
        search_engine=search,
        lifecycle=lifecycle,
        embedding_batch_size=batch_size,
    )


class TestSuccessfulIngestion:
    @pytest.mark.asyncio
    async def test_text_job_succeeds(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        result = await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        assert result.status == TaskState.SUCCEEDED.value
        assert result.chunks_created == 4
        assert result.total_tokens == 16
        task = await lifecycle.get("t1")
        assert task.status is TaskState.SUCCEEDED
        assert task.progress == 1.0

    @pytest.mark.asyncio
    async def test_chunks_carry_embeddings_into_index(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        mock_search_engine.upsert_chunks.assert_awaited_once()
        indexed: list[DocumentChunk] = mock_search_engine.upsert_chunks.await_args.args[0]
        assert [c.chunk_index for c in indexed] == [0, 1, 2, 3]
        assert all(c.embedding == [0.1, 0.2, 0.3] for c in indexed)
        assert mock_embedding_provider.embed_single.await_count == 4

    @pytest.mark.asyncio
    async def test_batched_embedding(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine, batch_size=3)

        result = await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        assert result.chunks_created == 4
        assert mock_embedding_provider.embed.await_count == 2
        mock_embedding_provider.embed_single.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_markdown_document_job(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
        sample_markdown: str,
    ) -> None:
        doc = MarkdownParser().parse_document(sample_markdown, "handbook.md")
        await lifecycle.create("t1")
        pipeline = IngestionPipeline(
            chunker=DocumentChunker(),
            embedding_provider=mock_embedding_provider,
            search_engine=mock_search_engine,
            lifecycle=lifecycle,
        )

        result = await pipeline.process_document(doc, "t1")

        assert result.title == "Operations Handbook"
        indexed = mock_search_engine.upsert_chunks.await_args.args[0]
        assert indexed[0].metadata.author == "Platform Team"
        assert indexed[0].source_file == "handbook.md"

    @pytest.mark.asyncio
    async def test_blank_text_succeeds_without_indexing(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        result = await pipeline.process_text("   ", "blank.txt", "t1")

        assert result.chunks_created == 0
        mock_search_engine.upsert_chunks.assert_not_awaited()
        assert (await lifecycle.get("t1")).status is TaskState.SUCCEEDED


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_recorded_after_each_chunk(
        self,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        store = MemoryTaskStore()
        lifecycle = TaskLifecycle(store)
        await lifecycle.create("t1")
        observed: list[float] = []

        async def embed_and_observe(text: str) -> list[float]:
            task = await store.get("t1")
            observed.append(task.progress)
            return [0.5]

        mock_embedding_provider.embed_single = AsyncMock(side_effect=embed_and_observe)
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        # Value seen before embedding chunk k is the progress after chunk k-1.
        assert observed == pytest.approx([0.0, 0.175, 0.35, 0.525])


class TestFailures:
    @pytest.mark.asyncio
    async def test_indexing_failure_keeps_embedding_progress(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        mock_search_engine.upsert_chunks = AsyncMock(
            side_effect=IndexingError("bulk upsert rejected", provider_name="meilisearch")
        )
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        result = await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        assert result.status == TaskState.FAILED.value
        task = await lifecycle.get("t1")
        assert task.status is TaskState.FAILED
        assert "bulk upsert rejected" in task.error
        assert task.progress == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_embedding_failure_mid_job(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        mock_embedding_provider.embed_single = AsyncMock(
            side_effect=[[0.1], [0.2], EmbeddingError("embedding server down")]
        )
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        result = await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        task = await lifecycle.get("t1")
        assert result.error == task.error
        assert task.status is TaskState.FAILED
        assert task.progress == pytest.approx(0.35)
        mock_search_engine.upsert_chunks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_vector_count_fails(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        mock_embedding_provider.embed = AsyncMock(return_value=[[0.1]])
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine, batch_size=4)

        await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        task = await lifecycle.get("t1")
        assert task.status is TaskState.FAILED
        assert "Expected 4 embeddings, got 1" in task.error

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_task_and_propagates(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
    ) -> None:
        await lifecycle.create("t1")
        mock_search_engine.upsert_chunks = AsyncMock(side_effect=RuntimeError("kaboom"))
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        with pytest.raises(RuntimeError):
            await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        task = await lifecycle.get("t1")
        assert task.status is TaskState.FAILED
        assert task.error == "Unexpected error: kaboom"

    @pytest.mark.asyncio
    async def test_start_failure_does_not_leave_task_pending(
        self,
        lifecycle: TaskLifecycle,
        mock_embedding_provider: MagicMock,
        mock_search_engine: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await lifecycle.create("t1")
        monkeypatch.setattr(
            lifecycle, "start", AsyncMock(side_effect=RuntimeError("store unavailable"))
        )
        pipeline = _pipeline(lifecycle, mock_embedding_provider, mock_search_engine)

        with pytest.raises(RuntimeError):
            await pipeline.process_text(_FOUR_CHUNK_TEXT, "notes.txt", "t1")

        task = await lifecycle.get("t1")
        assert task.status is TaskState.FAILED
        assert task.error == "Unexpected error: store unavailable"
        mock_embedding_provider.embed_single.assert_not_awaited()
