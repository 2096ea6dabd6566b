"""Redis Pub/Sub bridge for delivery notifications.

The delivery port publishes progress notices and final results to a Redis
channel per delivery context. The WebSocket handler subscribes and relays
them to connected clients.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from mediarelay.config import get_settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "mediarelay:delivery:"

_async_client: aioredis.Redis | None = None


def _get_async_client() -> aioredis.Redis:
    """Lazy-init a module-level async Redis client (singleton)."""
    global _async_client
    if _async_client is None:
        settings = get_settings()
        _async_client = aioredis.from_url(settings.REDIS_URL)
    return _async_client


def channel_for(channel_id: str) -> str:
    return f"{CHANNEL_PREFIX}{channel_id}"


# ──────── Publisher ────────

async def publish(channel_id: str, message: dict[str, Any], client: aioredis.Redis | None = None) -> int:
    """Publish a JSON message; returns the number of subscribers that received it."""
    r = client or _get_async_client()
    return await r.publish(channel_for(channel_id), json.dumps(message))


# ──────── Subscriber ────────

async def subscribe_channel(channel_id: str) -> tuple[aioredis.Redis, aioredis.client.PubSub]:
    """Create an async Redis PubSub subscription for a delivery channel.

    Returns the shared client and a new pubsub instance.
    Caller should close the pubsub when done, but NOT the client.
    """
    r = _get_async_client()
    pubsub = r.pubsub()
    await pubsub.subscribe(channel_for(channel_id))
    return r, pubsub


async def listen_pubsub(pubsub: aioredis.client.PubSub):
    """Async generator that yields parsed messages from a PubSub subscription."""
    async for raw_message in pubsub.listen():
        if raw_message["type"] == "message":
            try:
                yield json.loads(raw_message["data"])
            except (json.JSONDecodeError, TypeError):
                continue


async def close_client() -> None:
    global _async_client
    if _async_client is not None:
        await _async_client.aclose()
        _async_client = None
