"""Result payload download with an integrity floor."""

from __future__ import annotations

import logging

import httpx

from mediarelay.errors import PayloadCorrupt, TransportFailure

logger = logging.getLogger(__name__)


async def download_payload(
    url: str,
    *,
    min_bytes: int = 0,
    provider: str | None = None,
    headers: dict[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 120.0,
) -> bytes:
    """Stream ``url`` into memory.

    Raises TransportFailure on network/HTTP errors and PayloadCorrupt when
    fewer than ``min_bytes`` arrive (providers sometimes hand out links to
    truncated or placeholder files).
    """
    client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    own_client = http_client is None

    try:
        chunks: list[bytes] = []
        async with client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes(chunk_size=8192):
                chunks.append(chunk)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportFailure(f"Failed to download result: {e}", provider=provider) from e
    finally:
        if own_client:
            await client.aclose()

    payload = b"".join(chunks)
    if len(payload) < min_bytes:
        raise PayloadCorrupt(
            f"Downloaded payload is {len(payload)} bytes, expected at least {min_bytes}",
            provider=provider,
        )

    logger.debug("Downloaded %d bytes from %s", len(payload), url[:80])
    return payload
