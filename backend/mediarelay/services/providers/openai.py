"""OpenAI image provider (generations + edits).

The response parser is shared with Grok, whose images API follows the same
``{"data": [{"b64_json" | "url", "revised_prompt"}]}`` shape.
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

logger = logging.getLogger(__name__)

PROVIDER = "openai"


def parse_images_response(data: dict[str, Any], provider: str) -> ProviderOutput:
    items = data.get("data") or []
    if not items:
        raise ProviderRefusal(f"{provider} returned no images", provider=provider)

    item = items[0]
    description = item.get("revised_prompt") or None
    if item.get("b64_json"):
        return ProviderOutput(content=base64.b64decode(item["b64_json"]), text=description)
    if item.get("url"):
        return ProviderOutput(url=item["url"], text=description)
    raise ProviderRefusal(f"{provider} returned an image entry without data", provider=provider)


async def generate_image(
    *,
    prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    size: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    require_key(api_key, PROVIDER, "OPENAI_API_KEY")

    body: dict[str, Any] = {"model": model, "prompt": prompt, "n": 1}
    if size:
        body["size"] = size
    headers = {"Authorization": f"Bearer {api_key}"}

    async with client_scope(http_client, timeout=180.0) as client:
        resp = await client.post(f"{base_url}/images/generations", json=body, headers=headers)
    output = parse_images_response(json_body(resp, PROVIDER), PROVIDER)
    logger.info("OpenAI image generated (model=%s)", model)
    return output


async def edit_image(
    *,
    prompt: str,
    reference_image: str,
    api_key: str,
    base_url: str,
    model: str,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    require_key(api_key, PROVIDER, "OPENAI_API_KEY")

    image_bytes, mime = await load_reference_image(
        reference_image, provider=PROVIDER, http_client=http_client,
    )
    ext = mime.split("/")[-1] or "png"
    files = {"image": (f"image.{ext}", image_bytes, mime)}
    form = {"model": model, "prompt": prompt}
    headers = {"Authorization": f"Bearer {api_key}"}

    async with client_scope(http_client, timeout=180.0) as client:
        resp = await client.post(f"{base_url}/images/edits", data=form, files=files, headers=headers)
    output = parse_images_response(json_body(resp, PROVIDER), PROVIDER)
    logger.info("OpenAI image edited (model=%s)", model)
    return output
