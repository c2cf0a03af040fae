"""Shared pytest fixtures for the kbchat test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from kbchat.config.settings import Settings
from kbchat.interfaces.embedding_provider import IEmbeddingProvider
from kbchat.interfaces.llm_provider import ILLMProvider
from kbchat.interfaces.search_engine_provider import ISearchEngineProvider
from kbchat.models.document import DocumentMetadata
from kbchat.models.rag import SearchResult
from kbchat.pipeline.task_lifecycle import TaskLifecycle
from kbchat.providers.task_store.memory_task_store import MemoryTaskStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def token_stream(
    tokens: list[str], error: Exception | None = None
) -> AsyncIterator[str]:
    """Async generator standing in for ``ILLMProvider.stream``."""
    for token in tokens:
        yield token
    if error is not None:
        raise error


def make_search_result(
    idx: int,
    *,
    source_file: str = "guide.md",
    score: float = 0.9,
    lvl1: str | None = "Guide",
    lvl2: str | None = None,
) -> SearchResult:
    return SearchResult(
        id=f"chunk-{idx}",
        content=f"Content of chunk {idx}.",
        metadata=DocumentMetadata(title="Guide", document_type="markdown"),
        hierarchy_lvl1=lvl1,
        hierarchy_lvl2=lvl2,
        chunk_index=idx,
        source_file=source_file,
        score=score,
    )


# ---------------------------------------------------------------------------
# Paths & settings
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def settings() -> Settings:
    """Settings with deterministic values, ignoring any local ``.env``."""
    return Settings(
        _env_file=None,
        meilisearch_url="http://search.test:7700",
        embedding_api_url="http://embed.test/v1",
        llm_api_url="http://llm.test/v1",
        llm_model="test-model",
        embedding_model="test-embed",
    )


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_markdown() -> str:
    return (
        "---\n"
        "title: Operations Handbook\n"
        "author: Platform Team\n"
        "tags: [ops, runbook]\n"
        "type: guide\n"
        "---\n"
        "# Operations\n"
        "\n"
        "Intro paragraph for the handbook.\n"
        "\n"
        "## Deploying\n"
        "\n"
        "Run the deploy script from the release branch.\n"
        "\n"
        "### Rollback\n"
        "\n"
        "Revert the release tag and redeploy.\n"
        "\n"
        "## Monitoring\n"
        "\n"
        "Dashboards live in the metrics folder.\n"
    )


@pytest.fixture
def sample_results() -> list[SearchResult]:
    return [
        make_search_result(1, score=0.93, lvl2="Install"),
        make_search_result(2, source_file="faq.md", score=0.71, lvl1=None),
        make_search_result(3, score=0.42),
    ]


# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MagicMock:
    provider = MagicMock(spec=IEmbeddingProvider)
    provider.embed_single = AsyncMock(return_value=[0.1, 0.2, 0.3])
    provider.embed = AsyncMock(side_effect=lambda texts: [[0.1, 0.2, 0.3] for _ in texts])
    provider.get_provider_name.return_value = "mock_embedding"
    provider.get_dimension.return_value = 3
    provider.is_available.return_value = True
    return provider


@pytest.fixture
def mock_search_engine() -> MagicMock:
    engine = MagicMock(spec=ISearchEngineProvider)
    engine.ensure_index = AsyncMock(return_value=False)
    engine.upsert_chunks = AsyncMock(side_effect=lambda chunks: len(chunks))
    engine.hybrid_search = AsyncMock(return_value=[])
    engine.list_documents = AsyncMock(return_value=[])
    engine.get_stats = AsyncMock(return_value={"numberOfDocuments": 0, "isIndexing": False})
    engine.is_available = AsyncMock(return_value=True)
    engine.get_provider_name.return_value = "mock_search"
    return engine


@pytest.fixture
def mock_llm() -> MagicMock:
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(return_value="The answer [Source 1].")
    llm.stream = MagicMock(side_effect=lambda **kwargs: token_stream(["The ", "answer."]))
    llm.get_provider_name.return_value = "mock_llm"
    llm.is_available.return_value = True
    llm.validate_credentials = AsyncMock(return_value=True)
    return llm


# ---------------------------------------------------------------------------
# Task tracking
# ---------------------------------------------------------------------------


@pytest.fixture
def task_store() -> MemoryTaskStore:
    return MemoryTaskStore()


@pytest.fixture
def lifecycle(task_store: MemoryTaskStore) -> TaskLifecycle:
    return TaskLifecycle(store=task_store)
