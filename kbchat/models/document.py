"""Document and chunk models for the kbchat knowledge base.

A :class:`Document` is what the parser produces from one uploaded file; a
:class:`DocumentChunk` is the unit that gets embedded and indexed.  Both are
frozen Pydantic v2 models: the embedding step attaches vectors by building a
new chunk with ``model_copy(update={"embedding": ...})``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DocumentMetadata(BaseModel):
    """Descriptive metadata carried from a document onto each of its chunks."""

    model_config = ConfigDict(frozen=True)

    title: str | None = Field(default=None, description="Resolved document title.")
    author: str | None = Field(default=None, description="Author from frontmatter, if any.")
    tags: list[str] = Field(default_factory=list, description="Free-form tags.")
    document_type: str | None = Field(
        default=None,
        description='Kind of source, e.g. "markdown" or "text".',
    )
    created_at: str | None = Field(default=None, description="ISO-8601 creation timestamp.")
    updated_at: str | None = Field(default=None, description="ISO-8601 update timestamp.")

    def merged_with(self, overrides: DocumentMetadata) -> DocumentMetadata:
        """Return a copy where every field set on *overrides* replaces ours."""
        update = {
            key: value
            for key, value in overrides.model_dump(exclude_unset=True).items()
            if value not in (None, [])
        }
        return self.model_copy(update=update)


class Document(BaseModel):
    """A parsed source document.

    ``content`` is the rendered HTML; ``body`` is the markdown source with
    frontmatter removed, which is what the chunker reads so that ``#``
    headings are still visible.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID) for this document.")
    title: str = Field(description="Resolved document title.")
    content: str = Field(description="Rendered HTML content.")
    body: str = Field(default="", description="Markdown source after frontmatter removal.")
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    chunks: list[DocumentChunk] = Field(
        default_factory=list,
        description="Ordered chunks; empty until the document is chunked.",
    )
    source_file: str | None = Field(default=None, description="Originating filename.")


class DocumentChunk(BaseModel):
    """A bounded slice of a document, ready for embedding and indexing."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID) for this chunk.")
    content: str = Field(description="The chunk's text.")
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    hierarchy_lvl1: str | None = Field(default=None, description="Enclosing level-1 heading.")
    hierarchy_lvl2: str | None = Field(default=None, description="Enclosing level-2 heading.")
    hierarchy_lvl3: str | None = Field(default=None, description="Enclosing level-3 heading.")
    chunk_index: int = Field(ge=0, description="0-based position in emission order.")
    source_file: str = Field(default="", description="File or source the chunk came from.")
    token_count: int = Field(default=0, ge=0, description="Token count of the chunk text.")
    embedding: list[float] | None = Field(
        default=None,
        description="Embedding vector, populated by the ingestion pipeline.",
    )


Document.model_rebuild()
