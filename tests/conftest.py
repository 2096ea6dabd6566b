"""Pytest configuration and shared fixtures.

Puts ``backend/`` on ``sys.path`` so tests can import the ``mediarelay``
package regardless of how pytest is invoked, and provides in-memory
versions of the orchestrator's collaborators.
"""
import os
import sys
from typing import Any

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from mediarelay.config import Settings  # noqa: E402
from mediarelay.services.capabilities import build_capability_table  # noqa: E402
from mediarelay.services.delivery import NotificationPort  # noqa: E402
from mediarelay.services.media_store import MediaStore  # noqa: E402
from mediarelay.services.task_store import InMemoryTaskStore  # noqa: E402
from mediarelay.services.task_tracker import AsyncTaskTracker  # noqa: E402


class RecordingNotifier:
    """Delivery notifier that keeps every message it is handed."""

    def __init__(self) -> None:
        self.messages: list[tuple[dict[str, Any], dict[str, Any]]] = []

    async def notify(self, context: dict[str, Any], message: dict[str, Any]) -> None:
        self.messages.append((context, message))

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [m for _, m in self.messages if m.get("type") == kind]


class FakeDownloader:
    """Stands in for ``download_payload``; returns a fixed payload per call."""

    def __init__(self, payload: bytes = b"\x00" * 20000) -> None:
        self.payload = payload
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, url: str, **kwargs: Any) -> bytes:
        self.calls.append((url, kwargs))
        return self.payload


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        MEDIA_VOLUME=str(tmp_path / "media"),
        DELIVERY_BACKEND="log",
        TASK_STORE="memory",
        PUBLIC_BASE_URL="https://relay.example.com",
        GEMINI_API_KEY="gemini-key",
        OPENAI_API_KEY="openai-key",
        GROK_API_KEY="grok-key",
        REPLICATE_API_TOKEN="replicate-token",
        KIE_API_KEY="kie-key",
    )


@pytest.fixture
def table(settings):
    return build_capability_table(settings)


@pytest.fixture
def tracker() -> AsyncTaskTracker:
    return AsyncTaskTracker(InMemoryTaskStore())


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def notifications(notifier) -> NotificationPort:
    return NotificationPort(notifier, timeout=1.0)


@pytest.fixture
def media_store(tmp_path) -> MediaStore:
    return MediaStore(str(tmp_path / "media"))


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()
