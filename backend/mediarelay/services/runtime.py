"""Process-wide wiring of the orchestrator components.

    runtime = get_runtime()
    envelope = await runtime.escalator.escalate(request, context={"channel": "abc"})
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any

import httpx

from mediarelay.config import Settings, get_settings
from mediarelay.errors import StrategyExhausted
from mediarelay.services.capabilities import CapabilityTable, build_capability_table
from mediarelay.services.correlator import CompletionCorrelator
from mediarelay.services.delivery import NotificationPort, build_notifier
from mediarelay.services.dispatcher import GenerationDispatcher
from mediarelay.services.downloads import download_payload
from mediarelay.services.fallback import FallbackEscalator
from mediarelay.services.generation_types import DeliveredResult, GenerationEnvelope, GenerationRequest
from mediarelay.services.media_store import MediaStore
from mediarelay.services.polling import PollingLoop
from mediarelay.services.providers import build_follow_up_operations, build_operations
from mediarelay.services.task_store import build_task_store
from mediarelay.services.task_tracker import AsyncTaskTracker

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT, follow_redirects=True,
        )
        self.table: CapabilityTable = build_capability_table(settings)
        self.tracker = AsyncTaskTracker(build_task_store(settings))
        self.notifications = NotificationPort(build_notifier(settings), timeout=settings.NOTIFY_TIMEOUT)
        self.media_store = MediaStore(settings.MEDIA_VOLUME)

        downloader = functools.partial(download_payload, http_client=self.http_client)
        self.correlator = CompletionCorrelator(
            self.tracker,
            self.notifications,
            self.media_store,
            downloader,
            min_payload_bytes=settings.MIN_PAYLOAD_BYTES,
        )
        self.dispatcher = GenerationDispatcher(
            build_operations(settings, self.http_client),
            self.table,
            self.tracker,
            self.correlator,
            self.notifications,
            PollingLoop(settings.POLL_INTERVAL_SECONDS, settings.POLL_TIMEOUT_SECONDS),
            downloader,
            follow_ups=build_follow_up_operations(settings, self.http_client),
            min_payload_bytes=settings.MIN_PAYLOAD_BYTES,
        )
        self.correlator.follow_up = self.dispatcher.dispatch_follow_up
        self.escalator = FallbackEscalator(self.dispatcher, self.table, self.notifications)
        self._background: set[asyncio.Task] = set()

    def materialize(self, request: GenerationRequest, envelope: GenerationEnvelope) -> DeliveredResult | None:
        """Turn a finished envelope into a DeliveredResult; raw bytes go to the media volume."""
        if not envelope.success or envelope.pending or envelope.result_ref is None:
            return None

        result = DeliveredResult(
            media_type=request.media_type,
            provider=envelope.provider,
            description=envelope.description,
            submission_id=envelope.submission_id,
            metadata=envelope.metadata,
        )
        if isinstance(envelope.result_ref, bytes):
            rel_path = self.media_store.save(
                envelope.result_ref, request.media_type, name=envelope.submission_id,
            )
            result.local_path = rel_path
            result.url = self.media_store.public_url(rel_path)
            result.size_bytes = len(envelope.result_ref)
        else:
            result.url = envelope.result_ref
        return result

    def start_background(self, request: GenerationRequest, context: dict[str, Any]) -> asyncio.Task:
        """Run a generation detached from the request; results go through the delivery port."""
        task = asyncio.create_task(self._generate_and_deliver(request, context))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _generate_and_deliver(self, request: GenerationRequest, context: dict[str, Any]) -> None:
        try:
            envelope = await self.escalator.escalate(
                request,
                context=context,
                avoid_provider=request.options.get("avoid_provider"),
                providers_tried=request.options.get("providers_tried"),
            )
        except StrategyExhausted as e:
            await self.notifications.emit(
                context, f"{e.message}. {e.guidance}", kind="error", details=e.to_dict(),
            )
            return

        if envelope.pending:
            await self.notifications.emit(
                context, envelope.description, kind="submitted", submission_id=envelope.submission_id,
            )
            return
        if envelope.text_only:
            await self.notifications.emit(context, envelope.description, kind="text", provider=envelope.provider)
            return

        result = self.materialize(request, envelope)
        if result is not None:
            await self.notifications.deliver(context, result)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.http_client.aclose()
        await self.tracker.aclose()


_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    """Lazy-init the process-wide Runtime (singleton)."""
    global _runtime
    if _runtime is None:
        _runtime = Runtime(get_settings())
    return _runtime


async def shutdown_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.aclose()
        _runtime = None
