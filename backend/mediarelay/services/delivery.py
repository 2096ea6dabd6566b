"""Delivery collaborator port.

Everything the orchestrator tells the caller (progress notices, chaining
notices, final results) goes through ``NotificationPort``. Sends are
best-effort: a failing or slow notifier is logged and never aborts the
generation that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

from mediarelay.services import pubsub
from mediarelay.services.generation_types import DeliveredResult

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "default"


class DeliveryNotifier(Protocol):
    async def notify(self, context: dict[str, Any], message: dict[str, Any]) -> None: ...


def channel_of(context: dict[str, Any] | None) -> str:
    return str((context or {}).get("channel") or DEFAULT_CHANNEL)


class PubSubNotifier:
    """Publishes each message as JSON on the context's Redis channel."""

    def __init__(self, client: aioredis.Redis | None = None) -> None:
        self._client = client

    async def notify(self, context: dict[str, Any], message: dict[str, Any]) -> None:
        receivers = await pubsub.publish(channel_of(context), message, client=self._client)
        logger.debug("Published %s to %s (%d receivers)", message.get("type"), channel_of(context), receivers)


class LogNotifier:
    """Writes messages to the log. Used when Redis is not available."""

    async def notify(self, context: dict[str, Any], message: dict[str, Any]) -> None:
        logger.info("[delivery:%s] %s", channel_of(context), message)


class NotificationPort:
    def __init__(self, notifier: DeliveryNotifier, timeout: float = 5.0) -> None:
        self.notifier = notifier
        self.timeout = timeout

    async def emit(
        self,
        context: dict[str, Any] | None,
        text: str,
        *,
        kind: str = "progress",
        **extra: Any,
    ) -> bool:
        """Send a short text notice. Returns False if it could not be sent."""
        return await self._send(context or {}, {"type": kind, "message": text, **extra})

    async def deliver(self, context: dict[str, Any] | None, result: DeliveredResult) -> bool:
        """Hand a validated final result to the caller."""
        return await self._send(context or {}, result.to_dict())

    async def _send(self, context: dict[str, Any], message: dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(self.notifier.notify(context, message), timeout=self.timeout)
            return True
        except Exception:
            # Best-effort
            logger.warning(
                "Failed to send %s notice to channel %s",
                message.get("type"), channel_of(context), exc_info=True,
            )
            return False


def build_notifier(settings) -> DeliveryNotifier:
    backend = settings.DELIVERY_BACKEND.strip().lower()
    if backend == "log":
        return LogNotifier()
    if backend != "redis":
        logger.warning("Unknown DELIVERY_BACKEND %r, using redis", settings.DELIVERY_BACKEND)
    return PubSubNotifier()
