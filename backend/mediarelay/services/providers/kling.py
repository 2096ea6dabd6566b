"""Kling video provider via Replicate predictions.

Supports text-to-video (KLING_T2V_MODEL) and image-to-video
(KLING_I2V_MODEL, reference image passed as ``start_image``).
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
from mediarelay.services.status_parsing import PollStatus, parse_poll_status

logger = logging.getLogger(__name__)

PROVIDER = "kling"


async def generate_video(
    *,
    prompt: str,
    api_token: str,
    base_url: str,
    model: str,
    reference_image: str | None = None,
    duration: int | None = None,
    aspect_ratio: str = "16:9",
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    """Create a Replicate prediction and return a poll-mode submission."""
    require_key(api_token, PROVIDER, "REPLICATE_API_TOKEN")

    model_input: dict[str, Any] = {
        "prompt": prompt,
        "duration": int(duration or 5),
        "aspect_ratio": aspect_ratio,
    }
    if reference_image:
        if reference_image.startswith(("http://", "https://")):
            model_input["start_image"] = reference_image
        else:
            image_bytes, mime = await load_reference_image(reference_image, provider=PROVIDER)
            model_input["start_image"] = f"data:{mime};base64,{base64.b64encode(image_bytes).decode('utf-8')}"

    headers = {"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"}

    async with client_scope(http_client) as client:
        resp = await client.post(
            f"{base_url}/models/{model}/predictions",
            json={"input": model_input},
            headers=headers,
        )
    data = json_body(resp, PROVIDER)

    prediction_id = data.get("id")
    if not prediction_id:
        raise ProviderRefusal(f"Replicate prediction creation failed: {data}", provider=PROVIDER)

    logger.info("Kling prediction created: %s (model=%s)", prediction_id, model)

    async def check() -> PollStatus:
        async with client_scope(http_client, timeout=30.0) as poll_client:
            poll_resp = await poll_client.get(f"{base_url}/predictions/{prediction_id}", headers=headers)
        return parse_poll_status(json_body(poll_resp, PROVIDER))

    return ProviderOutput(submission_id=prediction_id, poll=check, metadata={"model": model})
