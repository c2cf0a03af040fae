"""Markdown document parser.

Turns raw uploaded text into a :class:`~kbchat.models.document.Document`:

1. **Frontmatter** -- an optional YAML block delimited by ``---`` lines at
   the very top of the file supplies title, author, tags and type.  A
   malformed block is logged and ignored; it never fails the upload.
2. **Title** -- frontmatter ``title`` wins, then the first level-1 heading,
   then a title derived from the filename (``my_notes-v2.md`` becomes
   ``my notes v2``).
3. **Rendering** -- the body is rendered to HTML with Python-Markdown.  The
   unrendered body is kept alongside so the chunker can still see headings.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import markdown
import structlog
import yaml

from kbchat.models.document import Document, DocumentMetadata
from kbchat.utils.errors import DocumentReadError, ParseError

logger = structlog.get_logger(logger_name=__name__)

_FRONTMATTER_DELIMITER = "---"
_H1_PATTERN = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)
_TITLE_EXTENSIONS = (".markdown", ".md", ".txt")
_MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]


class MarkdownParser:
    """Parses markdown (or plain text) into normalized documents."""

    def __init__(self, default_document_type: str = "markdown") -> None:
        self._default_document_type = default_document_type

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_document(self, raw: str | bytes, filename: str) -> Document:
        """Parse *raw* into a :class:`Document`.

        Parameters
        ----------
        raw:
            File content.  Bytes are decoded as UTF-8, replacing invalid
            sequences.
        filename:
            Original filename; used for the fallback title and recorded as
            the document's ``source_file``.

        Returns
        -------
        Document
            Document with rendered HTML ``content`` and no chunks.
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        text = text.replace("\r\n", "\n")

        metadata = self._default_metadata()
        body = text
        block = self._split_frontmatter(text)
        if block is not None:
            frontmatter, body = block
            try:
                metadata = self._metadata_from_frontmatter(frontmatter, metadata)
            except ParseError as exc:
                logger.warning("frontmatter_parse_failed", filename=filename, error=str(exc))

        title = metadata.title or self._first_heading(body) or self.title_from_filename(filename)
        metadata = metadata.model_copy(update={"title": title})

        document = Document(
            id=str(uuid.uuid4()),
            title=title,
            content=markdown.markdown(body, extensions=_MARKDOWN_EXTENSIONS),
            body=body,
            metadata=metadata,
            source_file=filename,
        )
        logger.debug(
            "document_parsed",
            filename=filename,
            title=title,
            has_frontmatter=block is not None,
            chars=len(body),
        )
        return document

    def parse_file(self, path: str | Path) -> Document:
        """Read *path* from disk and parse it.

        Raises
        ------
        DocumentReadError
            If the file cannot be read.
        """
        file_path = Path(path)
        try:
            raw = file_path.read_bytes()
        except OSError as exc:
            raise DocumentReadError(f"Cannot read {file_path}: {exc}") from exc
        return self.parse_document(raw, file_path.name)

    @staticmethod
    def title_from_filename(filename: str) -> str:
        """Derive a readable title from *filename*."""
        name = Path(filename).name
        lowered = name.lower()
        for ext in _TITLE_EXTENSIONS:
            if lowered.endswith(ext):
                name = name[: -len(ext)]
                break
        title = re.sub(r"\s+", " ", name.replace("_", " ").replace("-", " ")).strip()
        return title or "Untitled"

    # ------------------------------------------------------------------
    # Frontmatter
    # ------------------------------------------------------------------

    @staticmethod
    def _split_frontmatter(text: str) -> tuple[str, str] | None:
        """Return ``(frontmatter, body)`` if *text* opens with a delimited block."""
        lines = text.split("\n")
        if not lines or lines[0].strip() != _FRONTMATTER_DELIMITER:
            return None
        for idx in range(1, len(lines)):
            if lines[idx].strip() == _FRONTMATTER_DELIMITER:
                frontmatter = "\n".join(lines[1:idx])
                body = "\n".join(lines[idx + 1 :]).lstrip("\n")
                return frontmatter, body
        return None

    def _metadata_from_frontmatter(
        self, frontmatter: str, defaults: DocumentMetadata
    ) -> DocumentMetadata:
        try:
            data = yaml.safe_load(frontmatter)
        except yaml.YAMLError as exc:
            raise ParseError(f"Invalid YAML frontmatter: {exc}") from exc

        if data is None:
            return defaults
        if not isinstance(data, dict):
            raise ParseError(f"Frontmatter must be a mapping, got {type(data).__name__}")

        update: dict[str, Any] = {}
        title = data.get("title")
        if title is not None and str(title).strip():
            update["title"] = str(title).strip()
        author = data.get("author")
        if author is not None:
            update["author"] = str(author)
        tags = data.get("tags")
        if isinstance(tags, list):
            update["tags"] = [tag for tag in tags if isinstance(tag, str)]
        doc_type = data.get("type", data.get("document_type"))
        if doc_type is not None:
            update["document_type"] = str(doc_type)
        return defaults.model_copy(update=update)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _default_metadata(self) -> DocumentMetadata:
        now = datetime.now(tz=timezone.utc).isoformat()
        return DocumentMetadata(
            document_type=self._default_document_type,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _first_heading(body: str) -> str | None:
        in_fence = False
        for line in body.split("\n"):
            if line.lstrip().startswith(("```", "~~~")):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            match = _H1_PATTERN.match(line)
            if match:
                return match.group(1).strip()
        return None
