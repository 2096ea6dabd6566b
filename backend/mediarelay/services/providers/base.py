"""Shared helpers for provider adapters: HTTP error mapping, clients, reference images."""

from __future__ import annotations

import base64
import binascii
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from mediarelay.errors import ProviderRefusal, ProviderUnavailable, TransportFailure

_DATA_URI = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)


@asynccontextmanager
async def client_scope(
    http_client: httpx.AsyncClient | None,
    timeout: float = 60.0,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the shared client, or a short-lived one that is closed afterwards."""
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield client


def require_key(api_key: str, provider: str, name: str) -> None:
    if not api_key:
        raise ProviderUnavailable(f"{name} is not configured", provider=provider)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:300] or response.reason_phrase
    if isinstance(data, dict):
        err = data.get("error") or data.get("detail") or data.get("msg") or data.get("message")
        if isinstance(err, dict):
            err = err.get("message") or err
        if err:
            return str(err)
    return str(data)[:300]


def raise_for_provider(response: httpx.Response, provider: str) -> None:
    """Map an HTTP error response onto the generation error taxonomy."""
    if response.is_success:
        return
    status = response.status_code
    detail = _error_detail(response)
    message = f"{provider} HTTP {status}: {detail}"

    if status in (401, 402, 403):
        raise ProviderUnavailable(message, provider=provider)
    if status in (400, 404, 422):
        raise ProviderRefusal(message, provider=provider)
    raise TransportFailure(message, provider=provider)


def json_body(response: httpx.Response, provider: str) -> dict[str, Any]:
    raise_for_provider(response, provider)
    try:
        data = response.json()
    except ValueError as e:
        raise TransportFailure(f"{provider} returned invalid JSON", provider=provider) from e
    if not isinstance(data, dict):
        raise TransportFailure(f"{provider} returned unexpected payload: {str(data)[:200]}", provider=provider)
    return data


async def load_reference_image(
    reference: str,
    *,
    provider: str,
    http_client: httpx.AsyncClient | None = None,
) -> tuple[bytes, str]:
    """Resolve a reference image (data URI, raw base64 or http(s) URL) to ``(bytes, mime)``."""
    match = _DATA_URI.match(reference)
    if match:
        return _b64decode(match.group("data"), provider), match.group("mime")

    if reference.startswith(("http://", "https://")):
        async with client_scope(http_client, timeout=30.0) as client:
            try:
                resp = await client.get(reference)
            except httpx.HTTPError as e:
                raise TransportFailure(f"Failed to fetch reference image: {e}", provider=provider) from e
        raise_for_provider(resp, provider)
        mime = resp.headers.get("content-type", "image/png").split(";")[0]
        return resp.content, mime

    return _b64decode(reference, provider), "image/png"


def _b64decode(data: str, provider: str) -> bytes:
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ProviderRefusal("Reference image is not valid base64", provider=provider) from e
