"""xAI Grok image provider."""

from __future__ import annotations

import logging

import httpx

from mediarelay.services.generation_types import ProviderOutput
from mediarelay.services.providers.base import client_scope, json_body, require_key
from mediarelay.services.providers.openai import parse_images_response

logger = logging.getLogger(__name__)

PROVIDER = "grok"


async def generate_image(
    *,
    prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    require_key(api_key, PROVIDER, "GROK_API_KEY")

    body = {"model": model, "prompt": prompt, "n": 1, "response_format": "b64_json"}
    headers = {"Authorization": f"Bearer {api_key}"}

    async with client_scope(http_client, timeout=120.0) as client:
        resp = await client.post(f"{base_url}/images/generations", json=body, headers=headers)
    output = parse_images_response(json_body(resp, PROVIDER), PROVIDER)
    logger.info("Grok image generated (model=%s)", model)
    return output
