"""Completion correlator: the only component that mutates tracked tasks.

Flow for one completion notice:
    lookup(id) ── missing ──> log, no-op
       │
       ├─ intermediate stage ──> acknowledge, leave task pending
       │
       └─ terminal stage ──> claim(id) ── lost ──> no-op (duplicate notice)
                                 │
                                 ├─ failed   ──> mark failed, tell caller
                                 └─ complete ──> download, validate, save,
                                                 deliver, chain follow-up
                              remove(id)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from mediarelay.errors import GenerationError, PayloadCorrupt, UnmatchedTask
from mediarelay.services.delivery import NotificationPort
from mediarelay.services.generation_types import DeliveredResult, GenerationTask, TaskStatus
from mediarelay.services.media_store import MediaStore
from mediarelay.services.notices import CompletionNotice, NoticeStage, ResultCandidate
from mediarelay.services.status_parsing import PollState, PollStatus
from mediarelay.services.task_tracker import AsyncTaskTracker

logger = logging.getLogger(__name__)

Downloader = Callable[..., Awaitable[bytes]]
FollowUpLauncher = Callable[[GenerationTask, ResultCandidate], Awaitable[GenerationTask]]


class NoticeOutcome(str, Enum):
    UNMATCHED = "unmatched"
    ACKNOWLEDGED = "acknowledged"
    DUPLICATE = "duplicate"
    DELIVERED = "delivered"
    FAILED = "failed"


class CompletionCorrelator:
    def __init__(
        self,
        tracker: AsyncTaskTracker,
        notifications: NotificationPort,
        media_store: MediaStore,
        downloader: Downloader,
        *,
        min_payload_bytes: int = 10000,
        follow_up: FollowUpLauncher | None = None,
    ) -> None:
        self.tracker = tracker
        self.notifications = notifications
        self.media_store = media_store
        self.downloader = downloader
        self.min_payload_bytes = min_payload_bytes
        self.follow_up = follow_up

    async def handle_completion_notice(
        self,
        submission_id: str | None,
        notice: CompletionNotice,
    ) -> NoticeOutcome:
        try:
            task = await self.tracker.require(submission_id)
        except UnmatchedTask as e:
            logger.warning("%s, ignoring %s notice", e, notice.stage.value)
            return NoticeOutcome.UNMATCHED

        if not notice.stage.is_terminal:
            logger.info(
                "Task %s: %s notice acknowledged, waiting for completion",
                submission_id, notice.stage.value,
            )
            return NoticeOutcome.ACKNOWLEDGED

        if not await self.tracker.claim(submission_id):
            logger.info("Task %s already claimed, ignoring duplicate %s notice", submission_id, notice.stage.value)
            return NoticeOutcome.DUPLICATE

        try:
            if notice.stage is NoticeStage.FAILED:
                await self._fail(task, notice.error or "Provider reported failure")
                return NoticeOutcome.FAILED

            candidate = notice.first_candidate()
            if candidate is None:
                await self._fail(task, "Completion notice carried no usable result")
                return NoticeOutcome.FAILED

            try:
                result = await self._materialize(task, candidate, total=len(notice.candidates))
            except GenerationError as e:
                await self._fail(task, e.message)
                return NoticeOutcome.FAILED
            except Exception as e:
                logger.exception("Task %s: storing the result crashed", submission_id)
                await self._fail(task, f"Could not store the result: {e}")
                return NoticeOutcome.FAILED

            task.transition(TaskStatus.COMPLETED)
            await self.tracker.save(task)
            await self.notifications.deliver(task.delivery_context, result)

            if task.wants_follow_up:
                await self._chain_follow_up(task, candidate)

            return NoticeOutcome.DELIVERED
        finally:
            await self.tracker.remove(submission_id)

    async def handle_poll_result(self, submission_id: str, status: PollStatus) -> NoticeOutcome:
        """Settle a poll-mode task. The waiting caller receives the media itself."""
        try:
            task = await self.tracker.require(submission_id)
        except UnmatchedTask as e:
            logger.warning("%s, ignoring poll result", e)
            return NoticeOutcome.UNMATCHED
        if not status.state.is_terminal:
            return NoticeOutcome.ACKNOWLEDGED
        if not await self.tracker.claim(submission_id):
            return NoticeOutcome.DUPLICATE

        try:
            if status.state is PollState.COMPLETED:
                task.transition(TaskStatus.COMPLETED)
                outcome = NoticeOutcome.DELIVERED
            else:
                task.transition(TaskStatus.FAILED)
                outcome = NoticeOutcome.FAILED
            await self.tracker.save(task)
            logger.info("Poll task %s settled as %s", submission_id, task.status.value)
            return outcome
        finally:
            await self.tracker.remove(submission_id)

    # ── internals ──

    async def _materialize(
        self,
        task: GenerationTask,
        candidate: ResultCandidate,
        *,
        total: int,
    ) -> DeliveredResult:
        payload = await self.downloader(
            candidate.url,
            min_bytes=self.min_payload_bytes,
            provider=task.provider,
        )
        if len(payload) < self.min_payload_bytes:
            raise PayloadCorrupt(
                f"Result payload is {len(payload)} bytes, expected at least {self.min_payload_bytes}",
                provider=task.provider,
            )

        rel_path = self.media_store.save(payload, task.media_type, name=task.submission_id)
        metadata: dict[str, Any] = {
            "title": candidate.title,
            "duration": candidate.duration,
            "candidate_id": candidate.candidate_id,
            "total_candidates": total,
            "source_url": candidate.url,
            **{k: v for k, v in candidate.extra.items() if v},
        }
        return DeliveredResult(
            media_type=task.media_type,
            provider=task.provider,
            url=self.media_store.public_url(rel_path),
            local_path=rel_path,
            size_bytes=len(payload),
            description=task.prompt or candidate.title or "",
            submission_id=task.submission_id,
            metadata=metadata,
        )

    async def _fail(self, task: GenerationTask, error: str) -> None:
        logger.error("Task %s (%s) failed: %s", task.submission_id, task.provider, error)
        task.transition(TaskStatus.FAILED)
        await self.tracker.save(task)
        await self.notifications.emit(
            task.delivery_context,
            f"Generation failed: {error}",
            kind="error",
            submission_id=task.submission_id,
        )

    async def _chain_follow_up(self, task: GenerationTask, candidate: ResultCandidate) -> None:
        if not candidate.candidate_id:
            logger.warning("Task %s wants a follow-up but the result has no id", task.submission_id)
            return
        if self.follow_up is None:
            logger.warning("Task %s wants a follow-up but no launcher is configured", task.submission_id)
            return

        try:
            follow_up_task = await self.follow_up(task, candidate)
            await self.tracker.register(follow_up_task, TaskStatus.AWAITING_CALLBACK)
        except Exception as e:
            logger.error("Failed to start follow-up for task %s: %s", task.submission_id, e, exc_info=True)
            await self.notifications.emit(
                task.delivery_context,
                f"The result was delivered, but the follow-up could not be started: {e}",
                kind="error",
                submission_id=task.submission_id,
            )
            return

        logger.info("Task %s chained follow-up %s", task.submission_id, follow_up_task.submission_id)
        await self.notifications.emit(
            task.delivery_context,
            "Result delivered, generating the follow-up now",
            kind="chaining",
            submission_id=task.submission_id,
            follow_up_id=follow_up_task.submission_id,
        )
