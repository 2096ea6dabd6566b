"""Task store backends for pending generation tasks.

Two implementations behind one interface:
  - InMemoryTaskStore: process-local dict guarded by an asyncio.Lock
  - RedisTaskStore: JSON values with a TTL plus a SET NX claim key

``claim`` is the only way a completion path gets exclusive ownership of a
task. Whoever loses the claim must treat the notice as already handled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol

import redis.asyncio as aioredis

from mediarelay.services.generation_types import GenerationTask

logger = logging.getLogger(__name__)

KEY_PREFIX = "mediarelay:task:"


class TaskStore(Protocol):
    async def get(self, submission_id: str) -> GenerationTask | None: ...

    async def put(self, task: GenerationTask) -> None: ...

    async def remove(self, submission_id: str) -> None: ...

    async def claim(self, submission_id: str) -> bool: ...

    async def aclose(self) -> None: ...


class InMemoryTaskStore:
    """Process-wide task map. Tasks are copied in and out so callers never share state."""

    def __init__(self) -> None:
        self._tasks: dict[str, dict] = {}
        self._claimed: set[str] = set()
        self._lock = asyncio.Lock()

    async def get(self, submission_id: str) -> GenerationTask | None:
        async with self._lock:
            data = self._tasks.get(submission_id)
        return GenerationTask.from_dict(data) if data else None

    async def put(self, task: GenerationTask) -> None:
        async with self._lock:
            self._tasks[task.submission_id] = task.to_dict()

    async def remove(self, submission_id: str) -> None:
        async with self._lock:
            self._tasks.pop(submission_id, None)
            self._claimed.discard(submission_id)

    async def claim(self, submission_id: str) -> bool:
        async with self._lock:
            if submission_id not in self._tasks or submission_id in self._claimed:
                return False
            self._claimed.add(submission_id)
            return True

    async def aclose(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._tasks)


class RedisTaskStore:
    """Redis-backed task map shared by every worker process.

    The claim key is left to expire on its own after ``remove`` so a late
    duplicate notice still loses the claim.
    """

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 86400) -> None:
        self._client = client
        self._ttl = ttl_seconds

    @staticmethod
    def _key(submission_id: str) -> str:
        return f"{KEY_PREFIX}{submission_id}"

    async def get(self, submission_id: str) -> GenerationTask | None:
        raw = await self._client.get(self._key(submission_id))
        if raw is None:
            return None
        try:
            return GenerationTask.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, ValueError):
            logger.warning("Corrupt task record for %s, ignoring", submission_id, exc_info=True)
            return None

    async def put(self, task: GenerationTask) -> None:
        await self._client.set(
            self._key(task.submission_id),
            json.dumps(task.to_dict()),
            ex=self._ttl,
        )

    async def remove(self, submission_id: str) -> None:
        await self._client.delete(self._key(submission_id))

    async def claim(self, submission_id: str) -> bool:
        if not await self._client.exists(self._key(submission_id)):
            return False
        claimed = await self._client.set(
            f"{self._key(submission_id)}:claim", "1", ex=self._ttl, nx=True,
        )
        return bool(claimed)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_task_store(settings) -> TaskStore:
    """Pick the backend named by ``TASK_STORE``."""
    backend = settings.TASK_STORE.strip().lower()
    if backend == "redis":
        logger.info("Task store: redis (%s)", settings.REDIS_URL)
        return RedisTaskStore(aioredis.from_url(settings.REDIS_URL), settings.TASK_TTL_SECONDS)
    if backend != "memory":
        logger.warning("Unknown TASK_STORE %r, falling back to memory", settings.TASK_STORE)
    logger.info("Task store: memory")
    return InMemoryTaskStore()
