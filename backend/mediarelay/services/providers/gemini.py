"""Gemini image generation and editing provider.

Uses the generateContent REST endpoint with image output enabled. Gemini can
answer with prose instead of an image; that text is surfaced so the
dispatcher can decide whether it counts as a success.
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

PROVIDER = "gemini"


def _parse_image_response(data: dict[str, Any], allow_text_only: bool) -> ProviderOutput:
    feedback = data.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise ProviderRefusal(f"Gemini blocked the prompt: {feedback['blockReason']}", provider=PROVIDER)

    candidates = data.get("candidates") or []
    if not candidates:
        raise ProviderRefusal("Gemini returned no candidates", provider=PROVIDER)

    candidate = candidates[0]
    texts: list[str] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            return ProviderOutput(
                content=base64.b64decode(inline["data"]),
                text=" ".join(texts) or None,
                metadata={"mime_type": inline.get("mimeType") or inline.get("mime_type")},
            )
        if part.get("text"):
            texts.append(part["text"].strip())

    if texts:
        return ProviderOutput(text=" ".join(texts), text_only=allow_text_only)

    reason = candidate.get("finishReason") or "no image in response"
    raise ProviderRefusal(f"Gemini returned no image: {reason}", provider=PROVIDER)


async def generate_image(
    *,
    prompt: str,
    api_key: str,
    base_url: str,
    model: str,
    reference_image: str | None = None,
    allow_text_only: bool = False,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderOutput:
    """Generate (or, with ``reference_image``, edit) an image."""
    require_key(api_key, PROVIDER, "GEMINI_API_KEY")

    parts: list[dict[str, Any]] = [{"text": prompt}]
    if reference_image:
        image_bytes, mime = await load_reference_image(
            reference_image, provider=PROVIDER, http_client=http_client,
        )
        parts.append({
            "inline_data": {
                "mime_type": mime,
                "data": base64.b64encode(image_bytes).decode("utf-8"),
            }
        })

    body = {
        "contents": [{"parts": parts}],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }
    headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}

    async with client_scope(http_client) as client:
        resp = await client.post(f"{base_url}/models/{model}:generateContent", json=body, headers=headers)
    data = json_body(resp, PROVIDER)

    output = _parse_image_response(data, allow_text_only)
    logger.info(
        "Gemini %s: %s",
        "edit" if reference_image else "image",
        "image received" if output.has_media else "text only",
    )
    return output
