"""Retrieval, generation, and ingestion result models.

Retrieval-augmented generation in kbchat:

    1. INGESTION: uploaded documents are chunked, embedded, and upserted
       into the Meilisearch index (see kbchat/services/ingestion/).
    2. RETRIEVAL: a question runs a hybrid (keyword + vector) query and the
       top hits come back as :class:`SearchResult` objects.
    3. GENERATION: the hits are rendered into a numbered context block and
       the LLM answers from it, citing ``[Source k]``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from kbchat.models.document import DocumentMetadata


class SearchResult(BaseModel):
    """One ranked hit returned by the search engine."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Chunk identifier.")
    content: str = Field(description="Chunk text.")
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    hierarchy_lvl1: str | None = None
    hierarchy_lvl2: str | None = None
    hierarchy_lvl3: str | None = None
    chunk_index: int = Field(default=0, ge=0)
    source_file: str = Field(default="")
    score: float = Field(
        default=0.0,
        description="Ranking score reported by the search engine; opaque, higher is better.",
    )


class StreamEvent(BaseModel):
    """One element of a streamed answer.

    A stream is any number of ``token`` events followed by exactly one
    terminal ``done`` or ``error`` event.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["token", "error", "done"]
    content: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.kind != "token"


class ChatResponse(BaseModel):
    """A complete, non-streamed answer with the sources it was grounded on."""

    model_config = ConfigDict(frozen=True)

    response: str
    sources: list[SearchResult] = Field(default_factory=list)
    session_id: str | None = None


class DocumentInfo(BaseModel):
    """Summary of one indexed document, aggregated from its chunks."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    status: str = "indexed"
    created_at: str | None = None
    chunk_count: int = Field(default=0, ge=0)


class IngestionResult(BaseModel):
    """Summary of a single ingestion job, returned by the pipeline and the CLI."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(description="Task the job ran under.")
    title: str = Field(description="Title of the ingested document.")
    status: str = Field(description="Terminal task status value.")
    chunks_created: int = Field(default=0, ge=0, description="Chunks produced and indexed.")
    total_tokens: int = Field(default=0, ge=0, description="Token count across all chunks.")
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")
    error: str | None = None
