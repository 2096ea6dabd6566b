"""Shape-tolerant job status parsing.

Provider adapters call ``parse_poll_status`` with the raw status payload
(and, where a provider is unusual, their own hints) and hand the polling
loop a canonical ``PollStatus``. Nothing downstream of this module knows a
provider's field names.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class PollState(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (PollState.COMPLETED, PollState.FAILED)


@dataclass
class PollStatus:
    """Canonical status-check result."""
    state: PollState
    result_ref: str | None = None
    error: str | None = None
    progress: float | None = None


_STATE_WORDS: dict[PollState, frozenset[str]] = {
    PollState.COMPLETED: frozenset({
        "completed", "complete", "succeeded", "succeed", "success", "done", "finished",
    }),
    PollState.FAILED: frozenset({
        "failed", "failure", "error", "cancelled", "canceled", "rejected", "expired",
    }),
    PollState.QUEUED: frozenset({
        "queued", "pending", "submitted", "starting", "waiting", "created",
    }),
    PollState.IN_PROGRESS: frozenset({
        "in_progress", "processing", "running", "generating", "started",
    }),
}

_STATUS_KEYS = ("status", "state", "task_status", "taskStatus", "job_status")
_RESULT_KEYS = (
    "video_url", "videoUrl", "audio_url", "audioUrl", "image_url", "imageUrl",
    "result_url", "resultUrl", "url", "uri", "output",
)
_ERROR_KEYS = ("error", "message", "msg", "failure_reason", "task_status_msg", "errorMessage")
_CONTAINER_KEYS = ("data", "output", "result", "response")


def classify_state(raw: Any) -> PollState:
    """Map a provider status word to a ``PollState``."""
    if raw is None:
        return PollState.UNKNOWN
    word = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    for state, words in _STATE_WORDS.items():
        if word in words:
            return state
    return PollState.UNKNOWN


def _layers(data: dict[str, Any]) -> list[dict[str, Any]]:
    """The payload itself plus one level of common wrapper objects."""
    layers = [data]
    for key in _CONTAINER_KEYS:
        inner = data.get(key)
        if isinstance(inner, dict):
            layers.append(inner)
    return layers


def _first(layers: Iterable[dict[str, Any]], keys: Iterable[str]) -> Any:
    for layer in layers:
        for key in keys:
            value = layer.get(key)
            if value not in (None, "", [], {}):
                return value
    return None


def extract_result_ref(value: Any) -> str | None:
    """Pull a URL out of a string, list of strings, or nested url-bearing dict."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, list):
        for item in value:
            ref = extract_result_ref(item)
            if ref:
                return ref
        return None
    if isinstance(value, dict):
        for key in ("url", "uri", "video", "video_url", "audio_url", "image_url"):
            ref = extract_result_ref(value.get(key))
            if ref:
                return ref
    return None


def _error_text(value: Any) -> str | None:
    if value in (None, ""):
        return None
    if isinstance(value, dict):
        return str(value.get("message") or value.get("msg") or value)
    return str(value)


def parse_poll_status(
    data: dict[str, Any],
    *,
    status_keys: Iterable[str] = _STATUS_KEYS,
    result_keys: Iterable[str] = _RESULT_KEYS,
) -> PollStatus:
    """Parse a status payload into a ``PollStatus``.

    If no recognized status word is present but a result reference already
    is, the job is treated as implicitly completed.
    """
    if not isinstance(data, dict):
        return PollStatus(state=PollState.UNKNOWN)

    layers = _layers(data)
    state = classify_state(_first(layers, status_keys))
    result_ref = extract_result_ref(_first(layers, result_keys))
    progress = _first(layers, ("progress", "percent"))

    if state is PollState.UNKNOWN and result_ref:
        state = PollState.COMPLETED

    error = None
    if state is PollState.FAILED:
        error = _error_text(_first(layers, _ERROR_KEYS)) or "Provider reported failure"

    try:
        progress = float(progress) if progress is not None else None
    except (TypeError, ValueError):
        progress = None

    return PollStatus(state=state, result_ref=result_ref, error=error, progress=progress)
