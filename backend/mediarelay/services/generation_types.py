"""Core generation types shared by the dispatcher, tracker, correlator and escalator."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable


class MediaType(str, Enum):
    """Closed set of media variants a provider can serve."""

    IMAGE = "image"
    IMAGE_EDIT = "image_edit"
    VIDEO = "video"
    IMAGE_TO_VIDEO = "image_to_video"
    MUSIC = "music"

    @classmethod
    def parse(cls, value: str | MediaType) -> MediaType:
        """Accept ``image-edit`` / ``image_edit`` / ``Image_Edit`` spellings."""
        if isinstance(value, MediaType):
            return value
        return cls(str(value).strip().lower().replace("-", "_"))


class TaskStatus(str, Enum):
    SUBMITTED = "submitted"
    AWAITING_CALLBACK = "awaiting_callback"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


# Allowed forward transitions; anything else is a bug in the caller.
_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.SUBMITTED: frozenset({TaskStatus.AWAITING_CALLBACK, TaskStatus.POLLING}),
    TaskStatus.AWAITING_CALLBACK: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.POLLING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class FallbackStrategy(str, Enum):
    ALTERNATE_PROVIDER = "alternate-provider"
    SIMPLIFY_PROMPT = "simplify-prompt"
    GENERALIZE_PROMPT = "generalize-prompt"


@dataclass
class GenerationRequest:
    """What the caller wants generated.

    ``options`` carries media-specific knobs: ``model``, ``duration``,
    ``aspect_ratio``, ``reference_image`` (URL, data URI or raw base64),
    ``allow_text_only``, ``wants_follow_up`` and ``follow_up``.
    """

    media_type: MediaType
    prompt: str
    options: dict[str, Any] = field(default_factory=dict)

    def with_prompt(self, prompt: str) -> GenerationRequest:
        return replace(self, prompt=prompt)

    @property
    def reference_image(self) -> str | None:
        return self.options.get("reference_image")

    @property
    def allow_text_only(self) -> bool:
        return bool(self.options.get("allow_text_only"))

    @property
    def wants_follow_up(self) -> bool:
        return bool(self.options.get("wants_follow_up"))


@dataclass
class GenerationTask:
    """A submitted job waiting on a provider callback or poll cycle."""

    submission_id: str
    media_type: MediaType
    provider: str
    prompt: str
    options: dict[str, Any] = field(default_factory=dict)
    delivery_context: dict[str, Any] = field(default_factory=dict)
    attempted_providers: set[str] = field(default_factory=set)
    status: TaskStatus = TaskStatus.SUBMITTED
    wants_follow_up: bool = False
    follow_up_params: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def is_pending(self) -> bool:
        return not self.status.is_terminal

    def transition(self, new_status: TaskStatus) -> None:
        """Move to ``new_status``; raises ValueError on a backwards or repeated move."""
        if new_status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Task {self.submission_id}: illegal transition "
                f"{self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "media_type": self.media_type.value,
            "provider": self.provider,
            "prompt": self.prompt,
            "options": self.options,
            "delivery_context": self.delivery_context,
            "attempted_providers": sorted(self.attempted_providers),
            "status": self.status.value,
            "wants_follow_up": self.wants_follow_up,
            "follow_up_params": self.follow_up_params,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationTask:
        return cls(
            submission_id=data["submission_id"],
            media_type=MediaType.parse(data["media_type"]),
            provider=data.get("provider", ""),
            prompt=data.get("prompt", ""),
            options=data.get("options") or {},
            delivery_context=data.get("delivery_context") or {},
            attempted_providers=set(data.get("attempted_providers") or []),
            status=TaskStatus(data.get("status", TaskStatus.SUBMITTED.value)),
            wants_follow_up=bool(data.get("wants_follow_up")),
            follow_up_params=data.get("follow_up_params") or {},
            created_at=float(data.get("created_at") or time.time()),
        )


@dataclass
class GenerationEnvelope:
    """Normalized outcome of one provider attempt."""

    success: bool
    provider: str
    result_ref: str | bytes | None = None
    description: str = ""
    error: str | None = None
    error_kind: str | None = None
    text_only: bool = False
    pending: bool = False
    submission_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        ref = self.result_ref
        return {
            "success": self.success,
            "provider": self.provider,
            "result_url": ref if isinstance(ref, str) else None,
            "result_bytes": len(ref) if isinstance(ref, bytes) else None,
            "description": self.description,
            "error": self.error,
            "error_kind": self.error_kind,
            "text_only": self.text_only,
            "pending": self.pending,
            "submission_id": self.submission_id,
        }


@dataclass
class FallbackAttempt:
    """One step of an escalation run (transient, never persisted)."""

    strategy: FallbackStrategy
    provider: str
    prompt: str
    success: bool
    error: str | None = None

    @property
    def outcome(self) -> str:
        return "success" if self.success else "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "provider": self.provider,
            "prompt": self.prompt,
            "outcome": self.outcome,
            "error": self.error,
        }


@dataclass
class DeliveredResult:
    """Final artifact handed to the delivery collaborator."""

    media_type: MediaType
    provider: str
    url: str | None = None
    local_path: str | None = None
    size_bytes: int = 0
    description: str = ""
    submission_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "result",
            "media_type": self.media_type.value,
            "provider": self.provider,
            "url": self.url,
            "local_path": self.local_path,
            "size_bytes": self.size_bytes,
            "description": self.description,
            "submission_id": self.submission_id,
            "metadata": self.metadata,
        }


@dataclass
class ProviderOutput:
    """Raw result of a provider operation, before envelope normalization.

    Exactly one shape applies: immediate media (``url`` / ``content``), text
    (``text``, success only when ``text_only`` is set), or a submission
    (``submission_id``; ``poll`` set for providers without callbacks).
    ``download_headers`` are sent when fetching a polled result URL that
    needs the provider's credentials.
    """

    url: str | None = None
    content: bytes | None = None
    text: str | None = None
    text_only: bool = False
    submission_id: str | None = None
    poll: Callable[[], Awaitable[Any]] | None = None
    download_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_media(self) -> bool:
        return bool(self.url or self.content)
