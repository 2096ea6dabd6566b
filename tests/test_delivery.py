"""Tests for the delivery port, the Redis pub/sub bridge and the WS relay."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from mediarelay.api.ws import _relay_pubsub_to_ws
from mediarelay.services import pubsub
from mediarelay.services.delivery import (
    LogNotifier,
    NotificationPort,
    PubSubNotifier,
    build_notifier,
    channel_of,
)
from mediarelay.services.generation_types import DeliveredResult, MediaType


def test_channel_of():
    assert channel_of({"channel": "c1"}) == "c1"
    assert channel_of({}) == "default"
    assert channel_of(None) == "default"


def test_build_notifier(settings):
    assert isinstance(build_notifier(settings), LogNotifier)
    assert isinstance(build_notifier(settings.model_copy(update={"DELIVERY_BACKEND": "redis"})), PubSubNotifier)


@pytest.mark.asyncio
async def test_pubsub_notifier_publishes_json():
    client = MagicMock()
    client.publish = AsyncMock(return_value=1)

    port = NotificationPort(PubSubNotifier(client))
    sent = await port.emit({"channel": "c1"}, "Attempting Gemini for image...", provider="gemini")

    assert sent is True
    channel, raw = client.publish.await_args.args
    assert channel == "mediarelay:delivery:c1"
    assert json.loads(raw) == {"type": "progress", "message": "Attempting Gemini for image...", "provider": "gemini"}


@pytest.mark.asyncio
async def test_deliver_sends_result_dict(notifier, notifications):
    result = DeliveredResult(media_type=MediaType.MUSIC, provider="suno", url="/media/music/a.mp3", size_bytes=12)

    assert await notifications.deliver({"channel": "c2"}, result)

    context, message = notifier.messages[0]
    assert context == {"channel": "c2"}
    assert message["type"] == "result"
    assert message["media_type"] == "music"


@pytest.mark.asyncio
async def test_failing_notifier_returns_false():
    class Broken:
        async def notify(self, context, message):
            raise ConnectionError("redis down")

    assert await NotificationPort(Broken()).emit({}, "hello") is False


@pytest.mark.asyncio
async def test_slow_notifier_times_out():
    class Slow:
        async def notify(self, context, message):
            await asyncio.sleep(5)

    assert await NotificationPort(Slow(), timeout=0.01).emit({}, "hello") is False


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages

    async def listen(self):
        for message in self.messages:
            yield message


@pytest.mark.asyncio
async def test_listen_pubsub_skips_non_messages_and_bad_json():
    fake = FakePubSub([
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": b"{not json"},
        {"type": "message", "data": json.dumps({"type": "result"}).encode()},
    ])

    received = [m async for m in pubsub.listen_pubsub(fake)]

    assert received == [{"type": "result"}]


@pytest.mark.asyncio
async def test_ws_relay_forwards_until_socket_closes():
    fake = FakePubSub([
        {"type": "message", "data": json.dumps({"n": 1})},
        {"type": "message", "data": json.dumps({"n": 2})},
        {"type": "message", "data": json.dumps({"n": 3})},
    ])
    ws = MagicMock()
    ws.send_json = AsyncMock(side_effect=[None, RuntimeError("closed"), None])

    await _relay_pubsub_to_ws(fake, ws, "c1")

    assert ws.send_json.await_count == 2
    ws.send_json.assert_any_await({"n": 1})
