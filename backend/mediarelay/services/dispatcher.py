"""Generation dispatcher: one provider attempt in, one normalized envelope out.

For every attempt the dispatcher:
1. Emits a best-effort "attempting provider X" notice
2. Invokes the single operation for (provider, media type)
3. Normalizes the ProviderOutput:
     media            → success envelope
     text             → ProviderRefusal, unless the caller allowed text-only
     submission       → register awaiting-callback, return a pending envelope
     submission+poll  → register polling, run the polling loop, settle
4. Folds every exception into the error taxonomy inside the envelope
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping

import httpx

from mediarelay.errors import (
    GenerationError,
    ProviderRefusal,
    ProviderUnavailable,
    TransportFailure,
)
from mediarelay.services.capabilities import CapabilityTable, normalize_provider_id
from mediarelay.services.correlator import CompletionCorrelator
from mediarelay.services.delivery import NotificationPort
from mediarelay.services.generation_types import (
    GenerationEnvelope,
    GenerationRequest,
    GenerationTask,
    MediaType,
    ProviderOutput,
    TaskStatus,
)
from mediarelay.services.notices import ResultCandidate
from mediarelay.services.polling import PollingLoop
from mediarelay.services.providers import FollowUpOperation, ProviderOperation
from mediarelay.services.status_parsing import PollState, PollStatus
from mediarelay.services.task_tracker import AsyncTaskTracker

logger = logging.getLogger(__name__)

Downloader = Callable[..., Awaitable[bytes]]


class ProviderMetrics:
    """Per-provider call statistics."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        self.total_calls = 0
        self.total_errors = 0
        self.total_latency_ms = 0
        self.errors_by_kind: dict[str, int] = {}

    def record(self, latency_ms: int, error_kind: str | None = None) -> None:
        self.total_calls += 1
        if error_kind:
            self.total_errors += 1
            self.errors_by_kind[error_kind] = self.errors_by_kind.get(error_kind, 0) + 1
        else:
            self.total_latency_ms += latency_ms

    def get_metrics(self) -> dict[str, Any]:
        successes = self.total_calls - self.total_errors
        return {
            "provider": self.provider,
            "total_calls": self.total_calls,
            "total_errors": self.total_errors,
            "error_rate": round(self.total_errors / max(self.total_calls, 1), 3),
            "avg_latency_ms": round(self.total_latency_ms / successes) if successes > 0 else 0,
            "errors_by_kind": dict(self.errors_by_kind),
        }


def _map_exception(exc: Exception, provider: str) -> GenerationError:
    if isinstance(exc, GenerationError):
        if exc.provider is None:
            exc.provider = provider
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in (401, 403):
            return ProviderUnavailable(f"{provider} rejected credentials (HTTP {status})", provider=provider)
        return TransportFailure(f"{provider} HTTP {status}", provider=provider)
    if isinstance(exc, httpx.HTTPError):
        return TransportFailure(f"{provider} request failed: {exc}", provider=provider)
    return GenerationError(f"{provider} failed: {exc}", provider=provider)


class GenerationDispatcher:
    def __init__(
        self,
        operations: Mapping[tuple[str, MediaType], ProviderOperation],
        table: CapabilityTable,
        tracker: AsyncTaskTracker,
        correlator: CompletionCorrelator,
        notifications: NotificationPort,
        polling: PollingLoop,
        downloader: Downloader,
        *,
        follow_ups: Mapping[str, FollowUpOperation] | None = None,
        min_payload_bytes: int = 10000,
    ) -> None:
        self.operations = dict(operations)
        self.table = table
        self.tracker = tracker
        self.correlator = correlator
        self.notifications = notifications
        self.polling = polling
        self.downloader = downloader
        self.follow_ups = dict(follow_ups or {})
        self.min_payload_bytes = min_payload_bytes
        self._metrics: dict[str, ProviderMetrics] = {}

        self._dispatchers: dict[MediaType, Callable[[GenerationRequest, ProviderOperation, str], Awaitable[ProviderOutput]]] = {
            MediaType.IMAGE: self._dispatch_image,
            MediaType.IMAGE_EDIT: self._dispatch_image_edit,
            MediaType.VIDEO: self._dispatch_video,
            MediaType.IMAGE_TO_VIDEO: self._dispatch_image_to_video,
            MediaType.MUSIC: self._dispatch_music,
        }

    # ── public API ──

    async def dispatch(
        self,
        request: GenerationRequest,
        provider: str,
        *,
        context: dict[str, Any] | None = None,
        attempted: Iterable[str] = (),
    ) -> GenerationEnvelope:
        """Run one attempt of ``request`` against ``provider``. Never raises."""
        provider = normalize_provider_id(provider) or ""
        media_type = request.media_type
        context = context or {}

        await self.notifications.emit(
            context,
            f"Attempting {self.table.label(provider)} for {media_type.value}...",
            provider=provider,
        )

        metrics = self._metrics_for(provider)
        start = time.monotonic()
        try:
            if not self.table.is_capable(provider, media_type):
                raise ProviderUnavailable(f"{provider} cannot serve {media_type.value}", provider=provider)
            operation = self.operations.get((provider, media_type))
            if operation is None:
                raise ProviderUnavailable(f"No {media_type.value} operation for {provider}", provider=provider)

            output = await self._dispatchers[media_type](request, operation, provider)
            envelope = await self._settle(request, provider, output, context, set(attempted))
        except Exception as e:
            error = _map_exception(e, provider)
            if type(error) is GenerationError:
                logger.exception("%s %s attempt crashed", provider, media_type.value)
            else:
                logger.warning("%s %s attempt failed (%s): %s", provider, media_type.value, error.kind, error.message)
            metrics.record(0, error.kind)
            return GenerationEnvelope(
                success=False,
                provider=provider,
                error=error.message,
                error_kind=error.kind,
            )

        metrics.record(int((time.monotonic() - start) * 1000))
        return envelope

    async def dispatch_follow_up(self, task: GenerationTask, candidate: ResultCandidate) -> GenerationTask:
        """Submit the chained follow-up for a completed task (e.g. music → music video)."""
        operation = self.follow_ups.get(task.provider)
        if operation is None:
            raise ProviderUnavailable(f"{task.provider} has no follow-up operation", provider=task.provider)

        submission_id = await operation(task, candidate)
        return GenerationTask(
            submission_id=submission_id,
            media_type=MediaType.VIDEO,
            provider=task.provider,
            prompt=task.prompt,
            options={"follow_up_of": task.submission_id, "source_candidate_id": candidate.candidate_id},
            delivery_context=task.delivery_context,
            attempted_providers={task.provider},
        )

    def get_metrics(self) -> list[dict[str, Any]]:
        return [m.get_metrics() for m in self._metrics.values()]

    def _metrics_for(self, provider: str) -> ProviderMetrics:
        return self._metrics.setdefault(provider, ProviderMetrics(provider))

    # ── per media type ──

    async def _dispatch_image(self, request: GenerationRequest, operation: ProviderOperation, provider: str) -> ProviderOutput:
        return await operation(request)

    async def _dispatch_image_edit(self, request: GenerationRequest, operation: ProviderOperation, provider: str) -> ProviderOutput:
        self._require_reference(request, provider)
        return await operation(request)

    async def _dispatch_video(self, request: GenerationRequest, operation: ProviderOperation, provider: str) -> ProviderOutput:
        return await operation(request)

    async def _dispatch_image_to_video(self, request: GenerationRequest, operation: ProviderOperation, provider: str) -> ProviderOutput:
        self._require_reference(request, provider)
        return await operation(request)

    async def _dispatch_music(self, request: GenerationRequest, operation: ProviderOperation, provider: str) -> ProviderOutput:
        return await operation(request)

    @staticmethod
    def _require_reference(request: GenerationRequest, provider: str) -> None:
        if not request.reference_image:
            raise ProviderUnavailable(
                f"{request.media_type.value} requires a reference image",
                provider=provider,
            )

    # ── output normalization ──

    async def _settle(
        self,
        request: GenerationRequest,
        provider: str,
        output: ProviderOutput,
        context: dict[str, Any],
        attempted: set[str],
    ) -> GenerationEnvelope:
        if output.has_media:
            return GenerationEnvelope(
                success=True,
                provider=provider,
                result_ref=output.url or output.content,
                description=output.text or "",
                metadata=output.metadata,
            )

        if output.text and not output.submission_id:
            if output.text_only and request.allow_text_only:
                return GenerationEnvelope(
                    success=True,
                    provider=provider,
                    description=output.text,
                    text_only=True,
                )
            raise ProviderRefusal(f"{provider} answered with text instead of media: {output.text[:200]}", provider=provider)

        if not output.submission_id:
            raise ProviderRefusal(f"{provider} returned no media and no job id", provider=provider)

        task = GenerationTask(
            submission_id=output.submission_id,
            media_type=request.media_type,
            provider=provider,
            prompt=request.prompt,
            options=dict(request.options),
            delivery_context=context,
            attempted_providers=attempted | {provider},
            wants_follow_up=request.wants_follow_up,
            follow_up_params=dict(request.options.get("follow_up") or {}),
        )

        if output.poll is None:
            await self.tracker.register(task, TaskStatus.AWAITING_CALLBACK)
            return GenerationEnvelope(
                success=True,
                provider=provider,
                description=f"{self.table.label(provider)} is generating, the result will be delivered when ready",
                pending=True,
                submission_id=task.submission_id,
                metadata=output.metadata,
            )

        await self.tracker.register(task, TaskStatus.POLLING)
        return await self._run_polling(task, output)

    async def _run_polling(self, task: GenerationTask, output: ProviderOutput) -> GenerationEnvelope:
        sid = task.submission_id
        try:
            status = await self.polling.run(output.poll, label=f"{task.provider} job {sid}", provider=task.provider)
            result_ref: str | bytes = status.result_ref
            if output.download_headers:
                # Result URL needs provider credentials; fetch it here
                result_ref = await self.downloader(
                    status.result_ref,
                    min_bytes=self.min_payload_bytes,
                    provider=task.provider,
                    headers=output.download_headers,
                )
        except Exception as e:
            await self.correlator.handle_poll_result(sid, PollStatus(state=PollState.FAILED, error=str(e)))
            raise

        await self.correlator.handle_poll_result(sid, status)
        return GenerationEnvelope(
            success=True,
            provider=task.provider,
            result_ref=result_ref,
            submission_id=sid,
            metadata=output.metadata,
        )
