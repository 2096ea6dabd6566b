"""Veo 3 video provider (Gemini long-running operations).

Async task pattern:
1. POST /models/{model}:predictLongRunning → operation name
2. GET  /{operation name} → poll until ``done``
3. Download generatedSamples[0].video.uri with the API key header
"""

from __future__ import annotations

import base64
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
from mediarelay.services.status_parsing import PollState, PollStatus, extract_result_ref

logger = logging.getLogger(__name__)

PROVIDER = "veo3"


def parse_operation(data: dict[str, Any]) -> PollStatus:
    """Map a Gemini operation resource onto a PollStatus."""
    if data.get("error"):
        err = data["error"]
        message = err.get("message") if isinstance(err, dict) else str(err)
        return PollStatus(state=PollState.FAILED, error=message or "Veo operation failed")

    if not data.get("done"):
        return PollStatus(state=PollState.IN_PROGRESS)

    response = data.get("response") or {}
    video_response = response.get("generateVideoResponse") or response
    samples = video_response.get("generatedSamples") or video_response.get("generatedVideos") or []
    if not samples:
        filtered = video_response.get("raiMediaFilteredReasons")
        reason = filtered[0] if filtered else "operation finished without a video"
        return PollStatus(state=PollState.FAILED, error=reason)

    return PollStatus(state=PollState.COMPLETED, result_ref=extract_result_ref(samples[0].get("video")))


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
    """Start a Veo generation and return a poll-mode submission."""
    require_key(api_key, PROVIDER, "GEMINI_API_KEY")

    instance: dict[str, Any] = {"prompt": prompt}
    if reference_image:
        image_bytes, mime = await load_reference_image(
            reference_image, provider=PROVIDER, http_client=http_client,
        )
        instance["image"] = {
            "bytesBase64Encoded": base64.b64encode(image_bytes).decode("utf-8"),
            "mimeType": mime,
        }

    parameters: dict[str, Any] = {"aspectRatio": aspect_ratio}
    if duration:
        parameters["durationSeconds"] = int(duration)

    headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}

    async with client_scope(http_client) as client:
        resp = await client.post(
            f"{base_url}/models/{model}:predictLongRunning",
            json={"instances": [instance], "parameters": parameters},
            headers=headers,
        )
    data = json_body(resp, PROVIDER)

    operation = data.get("name")
    if not operation:
        raise ProviderRefusal(f"Veo returned no operation: {data}", provider=PROVIDER)

    logger.info("Veo operation created: %s (model=%s)", operation, model)

    async def check() -> PollStatus:
        async with client_scope(http_client, timeout=30.0) as poll_client:
            poll_resp = await poll_client.get(f"{base_url}/{operation}", headers=headers)
        return parse_operation(json_body(poll_resp, PROVIDER))

    return ProviderOutput(
        submission_id=operation,
        poll=check,
        download_headers={"x-goog-api-key": api_key},
        metadata={"model": model},
    )
