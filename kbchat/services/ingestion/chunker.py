"""Heading-aware text chunking with overlapping windows.

Splits a document into :class:`~kbchat.models.document.DocumentChunk`
objects no larger than ``chunk_size`` tokens (512 by default) with up to
``overlap`` tokens (50 by default) shared between neighbours.

The source is first broken into *units*:

- **heading lines** (``#``, ``##``, ``###``) outside fenced code blocks,
- **paragraphs** separated by blank lines,
- and, when a paragraph is too big, its **sentences** (abbreviation-aware),
  or for a sentence that is still too big, **word windows**.

Units are packed greedily into chunks.  When the next unit does not fit the
chunk is flushed and the next one starts with the longest run of trailing
units that fits inside the overlap budget.  A single word longer than
``chunk_size`` cannot be split and is emitted on its own.

Headings are tracked across the whole document: a heading at level L sets
level L and clears every deeper level.  Each chunk is tagged with the
heading state in effect where its new (non-overlap) content starts, so a
chunk that begins in the middle of a section still carries that section's
headings.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from kbchat.models.document import Document, DocumentChunk, DocumentMetadata
from kbchat.utils.errors import ChunkingError, ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_HEADING_PATTERN = re.compile(r"^(#{1,3})\s+(.+?)\s*#*\s*$")
_FENCE_PREFIXES = ("```", "~~~")

_PARAGRAPH_SEPARATOR = "\n\n"
_SENTENCE_SEPARATOR = " "

# Periods after these do not end a sentence ("Dr. Smith", "e.g. this").
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "No",
        "Fig",
        "vs",
        "etc",
        "approx",
        "e.g",
        "i.e",
        "cf",
        "inc",
        "ltd",
    }
)

Headings = tuple[str | None, str | None, str | None]
TokenCounter = Callable[[str], int]

_NO_HEADINGS: Headings = (None, None, None)


def count_whitespace_tokens(text: str) -> int:
    """Count whitespace-delimited tokens in *text*."""
    return len(text.split())


def load_tokenizer_counter(name: str) -> TokenCounter:
    """Build a token counter from a HuggingFace ``tokenizers`` model id.

    Raises
    ------
    ConfigurationError
        If the tokenizer cannot be loaded (unknown id, no network, etc.).
    """
    from tokenizers import Tokenizer

    try:
        tokenizer = Tokenizer.from_pretrained(name)
    except Exception as exc:
        raise ConfigurationError(f"Cannot load tokenizer {name!r}: {exc}") from exc

    def _count(text: str) -> int:
        return len(tokenizer.encode(text, add_special_tokens=False).ids)

    logger.info("chunk_tokenizer_loaded", tokenizer=name)
    return _count


@dataclass(frozen=True)
class _Unit:
    """Smallest piece of text the accumulator moves around."""

    text: str
    tokens: int
    headings: Headings
    separator: str = _PARAGRAPH_SEPARATOR


class DocumentChunker:
    """Splits documents into bounded, overlapping, hierarchy-tagged chunks.

    Parameters
    ----------
    chunk_size:
        Maximum tokens per chunk (default 512).
    overlap:
        Maximum tokens shared between consecutive chunks (default 50).
    token_counter:
        Callable returning the token count of a string.  Defaults to
        whitespace-delimited counting.
    """

    def __init__(
        self,
        chunk_size: int = 512,
        overlap: int = 50,
        token_counter: TokenCounter | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ConfigurationError(
                f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._count_tokens = token_counter or count_whitespace_tokens

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk_document(self, document: Document) -> list[DocumentChunk]:
        """Split a parsed markdown document, tagging chunks with its headings.

        Every chunk inherits ``document.metadata``.  Blank documents yield
        an empty list.

        Raises
        ------
        ChunkingError
            If a non-blank document produces no chunks.
        """
        source = document.body if document.body.strip() else document.content
        source_file = document.source_file or document.title
        units = self._split_units(source, track_headings=True)
        return self._build_chunks(source, units, document.metadata, source_file)

    def chunk_text(self, text: str, source: str) -> list[DocumentChunk]:
        """Split plain text with no heading tracking.

        Chunks get synthetic metadata: ``title`` = *source* and
        ``document_type`` = ``"text"``.
        """
        now = datetime.now(tz=timezone.utc).isoformat()
        metadata = DocumentMetadata(
            title=source,
            document_type="text",
            created_at=now,
            updated_at=now,
        )
        units = self._split_units(text, track_headings=False)
        return self._build_chunks(text, units, metadata, source)

    # ------------------------------------------------------------------
    # Unit splitting
    # ------------------------------------------------------------------

    def _split_units(self, text: str, track_headings: bool) -> list[_Unit]:
        """Break *text* into heading and paragraph units, in order."""
        units: list[_Unit] = []
        headings = _NO_HEADINGS
        paragraph: list[str] = []
        in_fence = False

        for line in text.split("\n"):
            stripped = line.strip()

            if stripped.startswith(_FENCE_PREFIXES):
                in_fence = not in_fence
                paragraph.append(line)
                continue
            if in_fence:
                paragraph.append(line)
                continue

            match = _HEADING_PATTERN.match(stripped) if track_headings else None
            if match:
                units.extend(self._paragraph_units(paragraph, headings))
                paragraph = []
                headings = self._apply_heading(headings, len(match.group(1)), match.group(2))
                units.append(_Unit(stripped, self._count_tokens(stripped), headings))
            elif not stripped:
                units.extend(self._paragraph_units(paragraph, headings))
                paragraph = []
            else:
                paragraph.append(line)

        units.extend(self._paragraph_units(paragraph, headings))
        return units

    @staticmethod
    def _apply_heading(current: Headings, level: int, title: str) -> Headings:
        levels = list(current)
        levels[level - 1] = title.strip()
        for deeper in range(level, 3):
            levels[deeper] = None
        return (levels[0], levels[1], levels[2])

    def _paragraph_units(self, lines: list[str], headings: Headings) -> list[_Unit]:
        """Turn accumulated paragraph lines into one or more units."""
        paragraph = "\n".join(lines).strip()
        if not paragraph:
            return []

        tokens = self._count_tokens(paragraph)
        if tokens <= self._chunk_size:
            return [_Unit(paragraph, tokens, headings)]

        units: list[_Unit] = []
        for sentence in self._split_sentences(paragraph):
            sentence_tokens = self._count_tokens(sentence)
            if sentence_tokens <= self._chunk_size:
                pieces = [(sentence, sentence_tokens)]
            else:
                pieces = self._split_words(sentence)
            for text, piece_tokens in pieces:
                separator = _SENTENCE_SEPARATOR if units else _PARAGRAPH_SEPARATOR
                units.append(_Unit(text, piece_tokens, headings, separator))
        return units

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* at ``.``, ``!`` or ``?`` followed by whitespace.

        Periods after known abbreviations are masked with ``\\x00`` first so
        they do not trigger a split; the mask keeps indices aligned.
        """
        masked = text
        for abbr in _ABBREVIATIONS:
            masked = masked.replace(f"{abbr}.", f"{abbr}\x00")

        sentences: list[str] = []
        last = 0
        for match in re.finditer(r"[.!?](?:\s|$)", masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)

        return sentences if sentences else [text]

    def _split_words(self, sentence: str) -> list[tuple[str, int]]:
        """Cut an oversized sentence into whitespace-aligned windows."""
        windows: list[tuple[str, int]] = []
        words: list[str] = []
        window_tokens = 0
        for word in sentence.split():
            word_tokens = self._count_tokens(word)
            if words and window_tokens + word_tokens > self._chunk_size:
                windows.append((" ".join(words), window_tokens))
                words = []
                window_tokens = 0
            words.append(word)
            window_tokens += word_tokens
        if words:
            windows.append((" ".join(words), window_tokens))
        return windows

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _build_chunks(
        self,
        source: str,
        units: list[_Unit],
        metadata: DocumentMetadata,
        source_file: str,
    ) -> list[DocumentChunk]:
        if not source.strip():
            return []

        chunks: list[DocumentChunk] = []
        for parts, first_new in self._accumulate(units):
            content = self._join(parts)
            lvl1, lvl2, lvl3 = parts[first_new].headings
            chunks.append(
                DocumentChunk(
                    id=str(uuid.uuid4()),
                    content=content,
                    metadata=metadata,
                    hierarchy_lvl1=lvl1,
                    hierarchy_lvl2=lvl2,
                    hierarchy_lvl3=lvl3,
                    chunk_index=len(chunks),
                    source_file=source_file,
                    token_count=self._count_tokens(content),
                )
            )

        if not chunks:
            raise ChunkingError(f"No chunks produced for non-empty source {source_file!r}")

        logger.debug(
            "chunking_complete",
            source_file=source_file,
            num_chunks=len(chunks),
            avg_tokens=sum(c.token_count for c in chunks) // len(chunks),
        )
        return chunks

    def _accumulate(self, units: list[_Unit]) -> list[tuple[list[_Unit], int]]:
        """Greedily pack *units* into chunks.

        Returns ``(parts, first_new)`` pairs where ``parts[:first_new]`` is
        the overlap carried over from the previous chunk.
        """
        groups: list[tuple[list[_Unit], int]] = []
        current: list[_Unit] = []
        current_tokens = 0
        first_new = 0

        for unit in units:
            if current and current_tokens + unit.tokens > self._chunk_size:
                groups.append((current, first_new))
                current = self._build_overlap(current, unit.tokens)
                current_tokens = sum(part.tokens for part in current)
                first_new = len(current)
            current.append(unit)
            current_tokens += unit.tokens

        if len(current) > first_new:
            groups.append((current, first_new))
        return groups

    def _build_overlap(self, parts: list[_Unit], next_tokens: int) -> list[_Unit]:
        """Return the longest tail of *parts* that fits the overlap budget.

        The tail must also leave room for the next unit, so carrying
        overlap never pushes a chunk past ``chunk_size``.
        """
        budget = min(self._overlap, self._chunk_size - next_tokens)
        overlap_parts: list[_Unit] = []
        overlap_tokens = 0
        for part in reversed(parts):
            if overlap_tokens + part.tokens > budget:
                break
            overlap_parts.insert(0, part)
            overlap_tokens += part.tokens
        return overlap_parts

    @staticmethod
    def _join(parts: list[_Unit]) -> str:
        pieces = [parts[0].text]
        for part in parts[1:]:
            pieces.append(part.separator)
            pieces.append(part.text)
        return "".join(pieces)
