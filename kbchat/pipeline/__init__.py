"""Ingestion task lifecycle and background job execution."""

from kbchat.pipeline.job_queue import IngestionJobQueue
from kbchat.pipeline.task_lifecycle import TaskLifecycle

__all__ = [
    "IngestionJobQueue",
    "TaskLifecycle",
]
