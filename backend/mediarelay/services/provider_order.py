"""Provider order resolution: pure functions, no I/O."""

from __future__ import annotations

from typing import Iterable, Sequence

from mediarelay.services.capabilities import CapabilityTable, normalize_provider_id
from mediarelay.services.generation_types import MediaType


def resolve_order(
    media_type: MediaType | str,
    avoid_provider: str | None,
    table: CapabilityTable,
) -> list[str]:
    """Return the configured, capability-filtered order minus ``avoid_provider``.

    The capability check is a hard boundary: the table never lists a
    provider for a media type it cannot serve.
    """
    media_type = MediaType.parse(media_type)
    avoid = normalize_provider_id(avoid_provider)
    return [
        pid for pid in table.order_for(media_type)
        if pid != avoid and table.is_capable(pid, media_type)
    ]


def next_candidates(
    attempted: Iterable[str],
    order: Sequence[str],
    last_tried: str | None = None,
) -> list[str]:
    """Rotate ``order`` to start right after ``last_tried``, skipping ``attempted``.

    Each provider appears at most once. When ``last_tried`` is absent (or not
    in ``order``) the rotation starts at index 0.
    """
    tried = set(attempted)
    start = order.index(last_tried) if last_tried in order else None
    providers: list[str] = []

    for i in range(len(order)):
        index = i if start is None else (start + 1 + i) % len(order)
        candidate = order[index]
        if not candidate:
            continue
        if candidate not in tried and candidate not in providers:
            providers.append(candidate)

    return providers
