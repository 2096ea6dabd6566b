"""Webhook ingress for callback-mode providers.

Each route normalizes the provider payload, acknowledges immediately and
hands the notice to the correlator in a background task so the provider
never waits on downloads or delivery.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends

from mediarelay.services.notices import (
    CompletionNotice,
    normalize_suno_callback,
    normalize_suno_video_callback,
)
from mediarelay.services.runtime import Runtime, get_runtime

logger = logging.getLogger(__name__)

router = APIRouter()


async def _process_notice(runtime: Runtime, notice: CompletionNotice) -> None:
    outcome = await runtime.correlator.handle_completion_notice(notice.submission_id, notice)
    logger.info("Notice for %s (%s) -> %s", notice.submission_id, notice.stage.value, outcome.value)


def _accept(notice: CompletionNotice, background: BackgroundTasks, runtime: Runtime) -> dict[str, Any]:
    if notice.submission_id:
        background.add_task(_process_notice, runtime, notice)
    else:
        logger.warning("Callback without a task id, ignoring (stage=%s)", notice.stage.value)
    return {"status": "received", "message": "Callback processed successfully"}


@router.post("/music/callback")
async def music_callback(
    background: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    """Suno music callback (text / first / complete stages)."""
    notice = normalize_suno_callback(payload)
    logger.info("Music callback received: task=%s stage=%s", notice.submission_id, notice.stage.value)
    return _accept(notice, background, runtime)


@router.post("/video/callback")
async def video_callback(
    background: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    """Suno music-video callback."""
    notice = normalize_suno_video_callback(payload)
    logger.info("Video callback received: task=%s stage=%s", notice.submission_id, notice.stage.value)
    return _accept(notice, background, runtime)
