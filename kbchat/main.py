"""kbchat FastAPI application entry point.

Wires together providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and starts the ingestion workers on startup.

``build_components`` is also used by the ingestion CLI so both entry
points share one assembly.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from kbchat.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from kbchat.api.routes import APP_VERSION, health_router
from kbchat.api.routes import router as api_router
from kbchat.config.loader import load_config
from kbchat.config.settings import Settings
from kbchat.pipeline.job_queue import IngestionJobQueue
from kbchat.pipeline.task_lifecycle import TaskLifecycle
from kbchat.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from kbchat.providers.llm.openai_provider import OpenAILLMProvider
from kbchat.providers.search.meilisearch_provider import MeilisearchProvider
from kbchat.providers.task_store.memory_task_store import MemoryTaskStore
from kbchat.services.ingestion.chunker import DocumentChunker, load_tokenizer_counter
from kbchat.services.ingestion.parser import MarkdownParser
from kbchat.services.ingestion.pipeline import IngestionPipeline
from kbchat.services.rag.generation_service import GenerationService
from kbchat.services.rag.retrieval_service import RetrievalService
from kbchat.utils.errors import KBChatError
from kbchat.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0)

    # -- Providers --
    embedding_provider = OpenAIEmbeddingProvider(settings=app_settings)
    llm_provider = OpenAILLMProvider(settings=app_settings)
    search_engine = MeilisearchProvider(
        http_client=http_client,
        base_url=app_settings.meilisearch_url,
        index_config=app_config.get("search_index", {}),
        api_key=app_settings.meilisearch_api_key,
        task_timeout=app_settings.meilisearch_task_timeout,
    )
    task_store = MemoryTaskStore()

    # -- Ingestion --
    chunking = app_config.get("chunking", {})
    token_counter = (
        load_tokenizer_counter(app_settings.chunk_tokenizer)
        if app_settings.chunk_tokenizer
        else None
    )
    chunker = DocumentChunker(
        chunk_size=chunking.get("chunk_size", app_settings.chunk_size),
        overlap=chunking.get("overlap", app_settings.chunk_overlap),
        token_counter=token_counter,
    )
    task_lifecycle = TaskLifecycle(store=task_store)
    ingestion_pipeline = IngestionPipeline(
        chunker=chunker,
        embedding_provider=embedding_provider,
        search_engine=search_engine,
        lifecycle=task_lifecycle,
        embedding_batch_size=app_settings.embedding_batch_size,
    )
    job_queue = IngestionJobQueue(
        workers=app_settings.ingestion_workers,
        max_pending=app_settings.ingestion_queue_size,
    )

    # -- RAG --
    retrieval_limit = app_config.get("retrieval", {}).get("limit", app_settings.retrieval_limit)
    retrieval_service = RetrievalService(
        search_engine=search_engine,
        default_limit=retrieval_limit,
    )
    generation_service = GenerationService(
        llm=llm_provider,
        temperature=app_settings.llm_temperature,
        max_tokens=app_settings.llm_max_tokens,
    )

    provider_list = [
        {"name": search_engine.get_provider_name(), "type": "search"},
        {"name": embedding_provider.get_provider_name(), "type": "embedding"},
        {"name": llm_provider.get_provider_name(), "type": "llm"},
        {"name": "memory", "type": "task_store"},
    ]

    return {
        "settings": app_settings,
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "llm_provider": llm_provider,
        "search_engine": search_engine,
        "task_store": task_store,
        "task_lifecycle": task_lifecycle,
        "parser": MarkdownParser(),
        "chunker": chunker,
        "ingestion_pipeline": ingestion_pipeline,
        "job_queue": job_queue,
        "retrieval_service": retrieval_service,
        "generation_service": generation_service,
        "sse_heartbeat_seconds": app_settings.sse_heartbeat_seconds,
        "provider_list": provider_list,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = build_components(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    # An unreachable search engine must not stop the API from serving
    # /health; ingestion and chat report the failure per request.
    try:
        created = await components["search_engine"].ensure_index()
        _logger.info("search_index_ready", created=created)
    except KBChatError as exc:
        _logger.error("search_index_setup_failed", error=str(exc))

    job_queue: IngestionJobQueue = components["job_queue"]
    job_queue.start()

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        providers=len(components["provider_list"]),
        workers=job_queue.running,
    )

    yield

    # -- Shutdown: stop workers, close shared httpx client --
    await job_queue.stop()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="Workers stopped, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="kbchat API",
        version=APP_VERSION,
        description=(
            "Upload markdown and text documents into a hybrid-search knowledge "
            "base, then ask questions answered by an LLM grounded in the "
            "retrieved chunks, streamed over Server-Sent Events."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    # -- Routes --
    application.include_router(health_router)
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "kbchat.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
