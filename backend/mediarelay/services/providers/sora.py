"""Sora 2 video provider (OpenAI videos API).

Async task pattern:
1. POST /videos (multipart; ``input_reference`` for image-to-video) → job id
2. GET  /videos/{id} → queued / in_progress / completed / failed
3. GET  /videos/{id}/content (authenticated) → MP4 bytes
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mediarelay.errors import ProviderRefusal
from mediarelay.services.generation_types import ProviderOutput
from mediarelay.services.providers.base import (
    client_scope,
    json_body,
    load_reference_image,
    require_key,
)
from mediarelay.services.status_parsing import PollState, PollStatus, parse_poll_status

logger = logging.getLogger(__name__)

PROVIDER = "sora"

_SIZES = {"16:9": "1280x720", "9:16": "720x1280"}


async def generate_video(
    *,
    prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    reference_image: str | None = None,
    duration: int | None = None,
    aspect_ratio: str = "16:9",
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    """Create a Sora job and return a poll-mode submission."""
    require_key(api_key, PROVIDER, "OPENAI_API_KEY")

    form: dict[str, Any] = {
        "model": model,
        "prompt": prompt,
        "size": _SIZES.get(aspect_ratio, _SIZES["16:9"]),
    }
    if duration:
        form["seconds"] = str(int(duration))

    files = None
    if reference_image:
        image_bytes, mime = await load_reference_image(
            reference_image, provider=PROVIDER, http_client=http_client,
        )
        files = {"input_reference": (f"reference.{mime.split('/')[-1]}", image_bytes, mime)}

    headers = {"Authorization": f"Bearer {api_key}"}

    async with client_scope(http_client) as client:
        if files:
            resp = await client.post(f"{base_url}/videos", data=form, files=files, headers=headers)
        else:
            resp = await client.post(f"{base_url}/videos", json=form, headers=headers)
    data = json_body(resp, PROVIDER)

    video_id = data.get("id")
    if not video_id:
        raise ProviderRefusal(f"Sora job creation failed: {data}", provider=PROVIDER)

    logger.info("Sora job created: %s (model=%s)", video_id, model)
    content_url = f"{base_url}/videos/{video_id}/content"

    async def check() -> PollStatus:
        async with client_scope(http_client, timeout=30.0) as poll_client:
            poll_resp = await poll_client.get(f"{base_url}/videos/{video_id}", headers=headers)
        status = parse_poll_status(json_body(poll_resp, PROVIDER))
        if status.state is PollState.COMPLETED and not status.result_ref:
            status.result_ref = content_url
        return status

    return ProviderOutput(
        submission_id=video_id,
        poll=check,
        download_headers=headers,
        metadata={"model": model},
    )
