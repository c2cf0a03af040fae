"""Request and response schemas for the kbchat HTTP API.

Domain models (TaskStatus, SearchResult, ChatResponse, DocumentInfo) are
returned as-is where their shape is already the wire format; the classes
here cover the request bodies and the envelopes around them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kbchat.models.rag import DocumentInfo


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat`` and ``POST /api/chat/complete``."""

    message: str = Field(min_length=1, description="The user's question.")
    session_id: str | None = Field(default=None, description="Opaque client session id.")
    limit: int | None = Field(
        default=None,
        ge=1,
        le=50,
        description="Number of sources to retrieve; server default when omitted.",
    )
    filters: str | None = Field(
        default=None,
        description='Search engine filter expression, e.g. document_type = "markdown".',
    )


class UploadResponse(BaseModel):
    """Answer to ``POST /api/documents``: the task to poll."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    status: str = "processing"


class DocumentListResponse(BaseModel):
    """Answer to ``GET /api/documents``."""

    model_config = ConfigDict(frozen=True)

    documents: list[DocumentInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Answer to ``GET /health``."""

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    providers: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """JSON body returned for every application error."""

    model_config = ConfigDict(frozen=True)

    error: str
    detail: str | None = None
