"""Retrieve-then-generate services behind the chat endpoints."""

from kbchat.services.rag.generation_service import GenerationService
from kbchat.services.rag.retrieval_service import RetrievalService

__all__ = [
    "GenerationService",
    "RetrievalService",
]
