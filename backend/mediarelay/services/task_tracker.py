"""Async task tracker: registry of submissions awaiting a callback or poll result."""

from __future__ import annotations

import logging

from mediarelay.errors import UnmatchedTask
from mediarelay.services.generation_types import GenerationTask, TaskStatus
from mediarelay.services.task_store import TaskStore

logger = logging.getLogger(__name__)


class AsyncTaskTracker:
    """Thin layer over a ``TaskStore`` keyed by the provider-issued submission id."""

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    async def register(
        self,
        task: GenerationTask,
        status: TaskStatus = TaskStatus.AWAITING_CALLBACK,
    ) -> GenerationTask:
        """Store ``task`` in its first pending state (awaiting-callback or polling)."""
        if status not in (TaskStatus.AWAITING_CALLBACK, TaskStatus.POLLING):
            raise ValueError(f"Cannot register a task as {status.value}")
        task.transition(status)
        await self.store.put(task)
        logger.info(
            "Registered %s task %s (provider=%s, status=%s)",
            task.media_type.value, task.submission_id, task.provider, status.value,
        )
        return task

    async def lookup(self, submission_id: str) -> GenerationTask | None:
        return await self.store.get(submission_id)

    async def require(self, submission_id: str | None) -> GenerationTask:
        """Like ``lookup`` but raises UnmatchedTask for unknown or settled ids."""
        task = await self.store.get(submission_id) if submission_id else None
        if task is None:
            raise UnmatchedTask(f"No pending task for submission {submission_id}")
        return task

    async def claim(self, submission_id: str) -> bool:
        return await self.store.claim(submission_id)

    async def save(self, task: GenerationTask) -> None:
        await self.store.put(task)

    async def remove(self, submission_id: str) -> None:
        await self.store.remove(submission_id)
        logger.debug("Removed task %s", submission_id)

    async def aclose(self) -> None:
        await self.store.aclose()
