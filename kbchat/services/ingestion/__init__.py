"""Document ingestion: parsing, chunking, and the embed-and-index pipeline."""

from kbchat.services.ingestion.chunker import DocumentChunker
from kbchat.services.ingestion.parser import MarkdownParser
from kbchat.services.ingestion.pipeline import IngestionPipeline

__all__ = [
    "DocumentChunker",
    "IngestionPipeline",
    "MarkdownParser",
]
