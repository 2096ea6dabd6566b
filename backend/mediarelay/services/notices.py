"""Completion notice normalization.

Webhook payloads differ per provider. The adapters here turn each one into a
``CompletionNotice`` at the HTTP boundary so the correlator only ever sees the
canonical shape.

Suno (via Kie.ai) music callbacks arrive in up to three stages for one task:
``text`` (lyrics ready), ``first`` (first track ready) and ``complete`` (all
tracks ready). Only ``complete`` carries the final audio.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class NoticeStage(str, Enum):
    TEXT_READY = "text_ready"
    FIRST_CANDIDATE_READY = "first_candidate_ready"
    COMPLETE = "complete"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (NoticeStage.COMPLETE, NoticeStage.FAILED)


@dataclass
class ResultCandidate:
    """One result a provider offers in a completion notice (e.g. one of two songs)."""
    order: int
    url: str | None = None
    candidate_id: str | None = None
    title: str | None = None
    duration: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionNotice:
    submission_id: str | None
    stage: NoticeStage
    candidates: list[ResultCandidate] = field(default_factory=list)
    error: str | None = None

    def first_candidate(self) -> ResultCandidate | None:
        """Lowest-ordered candidate that actually carries a URL."""
        usable = [c for c in self.candidates if c.url]
        if not usable:
            return None
        return min(usable, key=lambda c: c.order)


_SUNO_STAGES = {
    "text": NoticeStage.TEXT_READY,
    "first": NoticeStage.FIRST_CANDIDATE_READY,
    "complete": NoticeStage.COMPLETE,
    "error": NoticeStage.FAILED,
}

_AUDIO_URL_KEYS = ("audioUrl", "audio_url", "url", "stream_audio_url", "source_stream_audio_url")


def _submission_id(data: dict[str, Any]) -> str | None:
    value = data.get("task_id") or data.get("taskId")
    return str(value) if value else None


def _song_candidate(index: int, song: dict[str, Any]) -> ResultCandidate:
    url = next((song[k] for k in _AUDIO_URL_KEYS if song.get(k)), None)
    duration = song.get("duration")
    try:
        duration = float(duration) if duration is not None else None
    except (TypeError, ValueError):
        duration = None
    return ResultCandidate(
        order=index,
        url=url,
        candidate_id=song.get("id"),
        title=song.get("title"),
        duration=duration,
        extra={
            "tags": song.get("tags"),
            "model": song.get("modelName") or song.get("model_name"),
            "lyrics": (
                song.get("lyric") or song.get("lyrics") or song.get("prompt")
                or song.get("gptDescriptionPrompt") or ""
            ),
        },
    )


def normalize_suno_callback(payload: dict[str, Any]) -> CompletionNotice:
    """Normalize a Kie.ai Suno music callback body.

    Shape: ``{"code": 200, "msg": ..., "data": {"callbackType": "complete",
    "task_id": ..., "data": [song, ...]}}``.
    """
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        data = {}
    submission_id = _submission_id(data)
    code = payload.get("code")

    if code != 200:
        return CompletionNotice(
            submission_id=submission_id,
            stage=NoticeStage.FAILED,
            error=payload.get("msg") or f"Provider callback returned code {code}",
        )

    callback_type = str(data.get("callbackType") or data.get("callback_type") or "").lower()
    stage = _SUNO_STAGES.get(callback_type, NoticeStage.UNKNOWN)
    if stage is NoticeStage.UNKNOWN:
        logger.warning("Unsupported Suno callbackType %r for task %s", callback_type, submission_id)

    songs = data.get("data") or []
    candidates = [
        _song_candidate(i, song) for i, song in enumerate(songs) if isinstance(song, dict)
    ]
    error = payload.get("msg") if stage is NoticeStage.FAILED else None
    return CompletionNotice(submission_id=submission_id, stage=stage, candidates=candidates, error=error)


def normalize_suno_video_callback(payload: dict[str, Any]) -> CompletionNotice:
    """Normalize a Kie.ai music-video callback: ``{code, msg, data: {task_id, video_url}}``."""
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        data = {}
    submission_id = _submission_id(data)

    if payload.get("code") != 200:
        return CompletionNotice(
            submission_id=submission_id,
            stage=NoticeStage.FAILED,
            error=payload.get("msg") or "Music video generation failed",
        )

    video_url = data.get("video_url") or data.get("videoUrl")
    candidates = [ResultCandidate(order=0, url=video_url)] if video_url else []
    return CompletionNotice(submission_id=submission_id, stage=NoticeStage.COMPLETE, candidates=candidates)
