"""WebSocket endpoint for delivery notifications.

Subscribes to the Redis Pub/Sub channel a delivery context names and relays
progress notices and final results to connected browser clients.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mediarelay.services.pubsub import listen_pubsub, subscribe_channel

router = APIRouter()
logger = logging.getLogger(__name__)

# In-process registry: channel -> set of active WebSocket connections
_channel_connections: dict[str, set[WebSocket]] = {}


@router.websocket("/ws/{channel}")
async def ws_channel(ws: WebSocket, channel: str):
    """Relay a delivery channel to the client; answers ``ping`` with ``pong``."""
    await ws.accept()

    _channel_connections.setdefault(channel, set()).add(ws)
    logger.info("WS connected: channel=%s (total=%d)", channel, len(_channel_connections[channel]))

    pubsub = None
    listener_task = None
    try:
        _, pubsub = await subscribe_channel(channel)
        listener_task = asyncio.create_task(_relay_pubsub_to_ws(pubsub, ws, channel))

        while True:
            data = await ws.receive_text()
            if data == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("WS disconnected: channel=%s", channel)
    except Exception as exc:
        logger.warning("WS error for channel=%s: %s", channel, exc)
    finally:
        _channel_connections.get(channel, set()).discard(ws)
        if not _channel_connections.get(channel):
            _channel_connections.pop(channel, None)
        if listener_task:
            listener_task.cancel()
        if pubsub:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        # The redis client is a shared singleton from pubsub.py; do not close it


async def _relay_pubsub_to_ws(pubsub, ws: WebSocket, channel: str):
    """Background task: read from Redis Pub/Sub and forward to the WebSocket client."""
    try:
        async for message in listen_pubsub(pubsub):
            try:
                await ws.send_json(message)
            except Exception:
                break  # WebSocket closed
    except asyncio.CancelledError:
        pass
    except Exception as exc:
        logger.warning("Pub/Sub relay error for channel=%s: %s", channel, exc)
