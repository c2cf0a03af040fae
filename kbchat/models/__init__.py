"""kbchat domain models -- re-exports all public model classes.

    - document.py -- Document, DocumentChunk, DocumentMetadata
    - task.py     -- TaskState, TaskStatus (ingestion task lifecycle)
    - rag.py      -- SearchResult, StreamEvent, ChatResponse, DocumentInfo,
                    IngestionResult
"""

from kbchat.models.document import Document, DocumentChunk, DocumentMetadata
from kbchat.models.rag import (
    ChatResponse,
    DocumentInfo,
    IngestionResult,
    SearchResult,
    StreamEvent,
)
from kbchat.models.task import TaskState, TaskStatus

__all__ = [
    "ChatResponse",
    "Document",
    "DocumentChunk",
    "DocumentInfo",
    "DocumentMetadata",
    "IngestionResult",
    "SearchResult",
    "StreamEvent",
    "TaskState",
    "TaskStatus",
]
