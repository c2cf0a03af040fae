"""FastAPI routes for document ingestion and knowledge-base chat.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                          Method  Description
# ─────────────────────────────────────────────────────────────────────
# /health                           GET     Liveness + collaborator status
# /api/documents                    POST    Upload a file or raw content
# /api/documents                    GET     Indexed documents (by source)
# /api/documents/stats              GET     Raw search index statistics
# /api/documents/tasks              GET     All ingestion task statuses
# /api/documents/tasks/{task_id}    GET     One ingestion task status
# /api/chat                         POST    Streamed answer (SSE)
# /api/chat/complete                POST    Complete answer (JSON)
#
# Errors raised as KBChatError subclasses are turned into JSON responses
# by ErrorHandlingMiddleware (see middleware.py for the status mapping).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
import uuid
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError as PydanticValidationError
from sse_starlette.sse import EventSourceResponse

from kbchat.api.schemas import (
    ChatRequest,
    DocumentListResponse,
    ErrorResponse,
    HealthResponse,
    UploadResponse,
)
from kbchat.api.streaming import chat_event_stream
from kbchat.interfaces.search_engine_provider import ISearchEngineProvider
from kbchat.models.document import DocumentMetadata
from kbchat.models.rag import ChatResponse
from kbchat.models.task import TaskStatus
from kbchat.pipeline.job_queue import IngestionJobQueue
from kbchat.pipeline.task_lifecycle import TaskLifecycle
from kbchat.services.ingestion.parser import MarkdownParser
from kbchat.services.ingestion.pipeline import IngestionPipeline
from kbchat.services.rag.generation_service import GenerationService
from kbchat.services.rag.retrieval_service import RetrievalService
from kbchat.utils.errors import QueueFullError, TaskNotFoundError, ValidationError
from kbchat.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

router = APIRouter(prefix="/api")
health_router = APIRouter()

_MARKDOWN_SUFFIXES = (".md", ".markdown")
_DEFAULT_HEARTBEAT_SECONDS = 15


# ---------------------------------------------------------------------------
# Dependency injection helpers -- resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_parser(request: Request) -> MarkdownParser:
    return request.app.state.parser


def _get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline


def _get_lifecycle(request: Request) -> TaskLifecycle:
    return request.app.state.task_lifecycle


def _get_job_queue(request: Request) -> IngestionJobQueue:
    return request.app.state.job_queue


def _get_search_engine(request: Request) -> ISearchEngineProvider:
    return request.app.state.search_engine


def _get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def _get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


ParserDep = Annotated[MarkdownParser, Depends(_get_parser)]
PipelineDep = Annotated[IngestionPipeline, Depends(_get_pipeline)]
LifecycleDep = Annotated[TaskLifecycle, Depends(_get_lifecycle)]
JobQueueDep = Annotated[IngestionJobQueue, Depends(_get_job_queue)]
SearchEngineDep = Annotated[ISearchEngineProvider, Depends(_get_search_engine)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval_service)]
GenerationDep = Annotated[GenerationService, Depends(_get_generation_service)]


def _parse_metadata_field(raw: str | None) -> DocumentMetadata | None:
    """Parse the optional ``metadata`` form field; malformed JSON is ignored."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("metadata must be a JSON object")
        return DocumentMetadata.model_validate(data)
    except (ValueError, PydanticValidationError) as exc:
        _logger.warning("upload_metadata_ignored", error=str(exc))
        return None


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@health_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health and collaborator availability."""
    state = request.app.state
    providers: dict[str, Any] = {}

    search_engine = getattr(state, "search_engine", None)
    if search_engine is not None:
        providers["search"] = await search_engine.is_available()
    llm = getattr(state, "llm_provider", None)
    if llm is not None:
        providers["llm"] = llm.is_available()
    embedding = getattr(state, "embedding_provider", None)
    if embedding is not None:
        providers["embedding"] = embedding.is_available()
    job_queue = getattr(state, "job_queue", None)
    if job_queue is not None:
        providers["ingestion_workers"] = job_queue.running
        providers["ingestion_pending"] = job_queue.pending

    status = "ok" if providers.get("search", True) else "degraded"
    return HealthResponse(status=status, version=APP_VERSION, providers=providers)


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Upload a document for ingestion",
)
async def upload_document(
    parser: ParserDep,
    pipeline: PipelineDep,
    lifecycle: LifecycleDep,
    job_queue: JobQueueDep,
    file: Annotated[UploadFile | None, File()] = None,
    content: Annotated[str | None, Form()] = None,
    title: Annotated[str | None, Form()] = None,
    metadata: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    """Accept a file or raw content, create a task, and queue the ingestion job.

    Markdown files and raw ``content`` go through the markdown parser; any
    other file is ingested as plain text.  The response is returned before
    ingestion starts; poll ``/api/documents/tasks/{task_id}``.
    """
    if file is not None:
        filename = file.filename or (f"{title}.md" if title else "untitled.md")
        text = (await file.read()).decode("utf-8", errors="replace")
        is_markdown = filename.lower().endswith(_MARKDOWN_SUFFIXES)
    else:
        filename = f"{title}.md" if title else "untitled.md"
        text = content or ""
        is_markdown = True

    if not text.strip():
        raise ValidationError("Content is empty")
    if job_queue.is_full():
        raise QueueFullError()

    overrides = _parse_metadata_field(metadata)
    task_id = str(uuid.uuid4())
    await lifecycle.create(task_id)

    if is_markdown:
        document = parser.parse_document(text, filename)
        doc_metadata = document.metadata
        if overrides is not None:
            doc_metadata = doc_metadata.merged_with(overrides)
        doc_title = title or doc_metadata.title or document.title
        document = document.model_copy(
            update={
                "title": doc_title,
                "metadata": doc_metadata.model_copy(update={"title": doc_title}),
            }
        )

        async def _job() -> Any:
            return await pipeline.process_document(document, task_id)

        job_title = doc_title
    else:
        job_title = title or filename

        async def _job() -> Any:
            return await pipeline.process_text(text, job_title, task_id)

    try:
        job_queue.submit(task_id, _job)
    except QueueFullError as exc:
        await lifecycle.fail(task_id, exc.message)
        raise

    _logger.info(
        "document_upload_accepted",
        task_id=task_id,
        title=job_title,
        markdown=is_markdown,
        chars=len(text),
    )
    return UploadResponse(task_id=task_id, status="processing")


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List indexed documents",
)
async def list_documents(search_engine: SearchEngineDep) -> DocumentListResponse:
    """Return one entry per indexed source document with its chunk count."""
    documents = await search_engine.list_documents()
    return DocumentListResponse(documents=documents)


@router.get(
    "/documents/stats",
    summary="Search index statistics",
)
async def document_stats(search_engine: SearchEngineDep) -> dict[str, Any]:
    """Return the search engine's raw statistics for the chunk index."""
    return await search_engine.get_stats()


@router.get(
    "/documents/tasks",
    response_model=list[TaskStatus],
    summary="List ingestion tasks",
)
async def list_tasks(lifecycle: LifecycleDep) -> list[TaskStatus]:
    """Return every ingestion task known to this process, oldest first."""
    return await lifecycle.list_tasks()


@router.get(
    "/documents/tasks/{task_id}",
    response_model=TaskStatus,
    responses={404: {"model": ErrorResponse}},
    summary="Get ingestion task status",
)
async def get_task_status(task_id: str, lifecycle: LifecycleDep) -> TaskStatus:
    """Return the current status, progress and error of one task."""
    task = await lifecycle.get(task_id)
    if task is None:
        raise TaskNotFoundError(f"Task {task_id} not found")
    return task


# ---------------------------------------------------------------------------
# Chat endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/chat",
    responses={502: {"model": ErrorResponse}},
    summary="Ask a question and stream the answer (SSE)",
)
async def chat(
    body: ChatRequest,
    request: Request,
    retrieval: RetrievalDep,
    generation: GenerationDep,
) -> EventSourceResponse:
    """Retrieve context, then stream the answer as Server-Sent Events.

    Retrieval runs before the response starts, so a search failure is a
    normal 502.  Generation failures after that are sent in-band as an
    ``error`` event.
    """
    results, context = await retrieval.retrieve_with_context(
        body.message,
        limit=body.limit,
        filters=body.filters,
    )
    _logger.info(
        "chat_stream_started",
        session_id=body.session_id,
        sources=len(results),
    )
    heartbeat = getattr(request.app.state, "sse_heartbeat_seconds", _DEFAULT_HEARTBEAT_SECONDS)
    return EventSourceResponse(
        chat_event_stream(
            generation,
            body.message,
            context,
            results,
            is_disconnected=request.is_disconnected,
        ),
        ping=heartbeat,
    )


@router.post(
    "/chat/complete",
    response_model=ChatResponse,
    responses={502: {"model": ErrorResponse}},
    summary="Ask a question and receive the full answer",
)
async def chat_complete(
    body: ChatRequest,
    retrieval: RetrievalDep,
    generation: GenerationDep,
) -> ChatResponse:
    """Retrieve context and return the complete answer with its sources."""
    results, context = await retrieval.retrieve_with_context(
        body.message,
        limit=body.limit,
        filters=body.filters,
    )
    return await generation.generate(
        body.message,
        context,
        results,
        session_id=body.session_id,
    )
