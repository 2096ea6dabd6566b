"""Suno music provider via Kie.ai (callback mode).

Kie.ai answers a generate request with a task id and later POSTs the
result to ``/api/music/callback``. A finished track can be turned into a
music video with a second, separately submitted task whose result arrives
on ``/api/video/callback``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mediarelay.errors import ProviderRefusal, ProviderUnavailable
from mediarelay.services.generation_types import ProviderOutput
from mediarelay.services.providers.base import client_scope, json_body, require_key

logger = logging.getLogger(__name__)

PROVIDER = "suno"

MUSIC_CALLBACK_PATH = "/api/music/callback"
VIDEO_CALLBACK_PATH = "/api/video/callback"


def _task_id(data: dict[str, Any], what: str) -> str:
    code = data.get("code")
    if code in (401, 403):
        raise ProviderUnavailable(f"Kie.ai rejected credentials: {data.get('msg')}", provider=PROVIDER)
    if code != 200:
        raise ProviderRefusal(f"{what} submission failed: {data.get('msg') or code}", provider=PROVIDER)
    task_id = (data.get("data") or {}).get("taskId")
    if not task_id:
        raise ProviderRefusal(f"No task ID returned from {what} API", provider=PROVIDER)
    return str(task_id)


async def generate_music(
    *,
    prompt: str,
    api_key: str,
    base_url: str,
    callback_url: str,
    model: str = "V5",
    instrumental: bool = False,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    """Submit a music task; the result arrives later on the callback route."""
    require_key(api_key, PROVIDER, "KIE_API_KEY")

    body = {
        "prompt": prompt,
        "customMode": False,
        "instrumental": instrumental,
        "model": model,
        "callBackUrl": callback_url,
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    async with client_scope(http_client) as client:
        resp = await client.post(f"{base_url}/api/v1/generate", json=body, headers=headers)
    task_id = _task_id(json_body(resp, PROVIDER), "Music generation")

    logger.info("Suno music task submitted: %s (model=%s)", task_id, model)
    return ProviderOutput(submission_id=task_id, metadata={"model": model})


async def generate_music_video(
    *,
    task_id: str,
    audio_id: str,
    api_key: str,
    base_url: str,
    callback_url: str,
    author: str | None = None,
    domain_name: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> str:
    """Submit a music-video task for a finished track. Returns the video task id."""
    require_key(api_key, PROVIDER, "KIE_API_KEY")

    body: dict[str, Any] = {"taskId": task_id, "audioId": audio_id, "callBackUrl": callback_url}
    if author:
        body["author"] = author
    if domain_name:
        body["domainName"] = domain_name
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    async with client_scope(http_client) as client:
        resp = await client.post(f"{base_url}/api/v1/mp4/generate", json=body, headers=headers)
    video_task_id = _task_id(json_body(resp, PROVIDER), "Music video generation")

    logger.info("Suno music video task submitted: %s (music task %s)", video_task_id, task_id)
    return video_task_id
