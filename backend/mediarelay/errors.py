"""Generation error taxonomy.

Providers raise these; the dispatcher folds them into envelopes, and the
fallback escalator only ever lets ``StrategyExhausted`` reach the caller.
"""

from __future__ import annotations

from typing import Any


class GenerationError(Exception):
    """Base class for all generation failures."""

    kind = "generation_error"

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider


class ProviderUnavailable(GenerationError):
    """Provider is not configured, or rejected our credentials."""

    kind = "provider_unavailable"


class ProviderRefusal(GenerationError):
    """Provider declined the request, or answered with text instead of media."""

    kind = "provider_refusal"


class TransportFailure(GenerationError):
    """Network error or timeout on a single provider call."""

    kind = "transport_failure"


class PollTimeout(GenerationError):
    """Wall-clock budget exceeded while polling a provider job."""

    kind = "poll_timeout"


class PayloadCorrupt(GenerationError):
    """Downloaded result failed its integrity check."""

    kind = "payload_corrupt"


class UnmatchedTask(GenerationError):
    """Notice for an unknown or already-settled submission id. Never surfaced."""

    kind = "unmatched_task"


class StrategyExhausted(GenerationError):
    """Every fallback strategy was tried without success."""

    kind = "strategy_exhausted"

    def __init__(
        self,
        message: str,
        *,
        media_type: str,
        attempts: list[Any],
        guidance: str,
    ) -> None:
        super().__init__(message)
        self.media_type = media_type
        self.attempts = attempts
        self.guidance = guidance

    def to_dict(self) -> dict[str, Any]:
        return {
            "media_type": self.media_type,
            "attempts": [a.to_dict() for a in self.attempts],
            "guidance": self.guidance,
        }
