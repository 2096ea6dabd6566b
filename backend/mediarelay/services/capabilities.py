"""Declarative provider capability registry.

Single source of truth for which provider serves which media type. The
per-media-type priority order comes from settings and is always filtered
through this table, so a misconfigured order can never route an image task
to a music provider.

Usage:
    from mediarelay.services.capabilities import build_capability_table
    table = build_capability_table(get_settings())
    table.order_for(MediaType.VIDEO)        # ["veo3", "sora", "kling"]
    table.canonical_for(MediaType.VIDEO)    # "kling"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from mediarelay.services.generation_types import MediaType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderCandidate:
    """Capability descriptor for a single provider."""
    id: str
    capabilities: frozenset[MediaType]
    label: str
    callback: bool = False      # Completes via webhook instead of polling/sync

    def serves(self, media_type: MediaType) -> bool:
        return media_type in self.capabilities


def _candidate(pid: str, label: str, types: Iterable[MediaType], callback: bool = False) -> ProviderCandidate:
    return ProviderCandidate(id=pid, capabilities=frozenset(types), label=label, callback=callback)


PROVIDER_CANDIDATES: tuple[ProviderCandidate, ...] = (
    _candidate("gemini", "Gemini", [MediaType.IMAGE, MediaType.IMAGE_EDIT]),
    _candidate("openai", "OpenAI", [MediaType.IMAGE, MediaType.IMAGE_EDIT]),
    _candidate("grok", "Grok", [MediaType.IMAGE]),
    _candidate("veo3", "Veo 3", [MediaType.VIDEO, MediaType.IMAGE_TO_VIDEO]),
    _candidate("sora", "Sora 2", [MediaType.VIDEO, MediaType.IMAGE_TO_VIDEO]),
    _candidate("kling", "Kling", [MediaType.VIDEO, MediaType.IMAGE_TO_VIDEO]),
    _candidate("suno", "Suno", [MediaType.MUSIC], callback=True),
)

# Names callers (and LLM tool arguments) use for the same provider
PROVIDER_ALIASES: dict[str, str] = {
    "google": "gemini",
    "veo": "veo3",
    "veo-3": "veo3",
    "google-veo3": "veo3",
    "sora2": "sora",
    "sora-2": "sora",
    "sora-pro": "sora",
    "sora-2-pro": "sora",
    "kling-text-to-video": "kling",
    "replicate": "kling",
    "xai": "grok",
    "kie": "suno",
}


def normalize_provider_id(provider: str | None) -> str | None:
    """Map a provider name or alias to its registry id."""
    if not provider:
        return None
    key = str(provider).strip().lower()
    return PROVIDER_ALIASES.get(key, key)


def _parse_order(raw: str) -> list[str]:
    return [p for p in (normalize_provider_id(x) for x in raw.split(",")) if p]


def _parse_pairs(raw: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in raw.split(","):
        if "=" not in item:
            continue
        key, _, value = item.partition("=")
        pairs[key.strip().lower().replace("-", "_")] = value.strip()
    return pairs


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

class CapabilityTable:
    """Static media-type → provider mapping with priority order."""

    def __init__(
        self,
        candidates: Iterable[ProviderCandidate],
        order: Mapping[MediaType, Sequence[str]],
        canonical: Mapping[MediaType, str] | None = None,
    ) -> None:
        self._candidates: dict[str, ProviderCandidate] = {c.id: c for c in candidates}
        self._order: dict[MediaType, tuple[str, ...]] = {}
        for media_type in MediaType:
            self._order[media_type] = self._filter(media_type, order.get(media_type, ()))

        self._canonical: dict[MediaType, str] = {}
        for media_type, ids in self._order.items():
            wanted = normalize_provider_id((canonical or {}).get(media_type))
            if wanted and self.is_capable(wanted, media_type):
                self._canonical[media_type] = wanted
            elif ids:
                if wanted:
                    logger.warning(
                        "Canonical provider %s cannot serve %s, using %s",
                        wanted, media_type.value, ids[0],
                    )
                self._canonical[media_type] = ids[0]

    def _filter(self, media_type: MediaType, ids: Sequence[str]) -> tuple[str, ...]:
        kept: list[str] = []
        for pid in ids:
            pid = normalize_provider_id(pid) or ""
            if not self.is_capable(pid, media_type):
                logger.warning(
                    "Provider %s is not capable of %s, dropping from order",
                    pid, media_type.value,
                )
                continue
            if pid not in kept:
                kept.append(pid)
        return tuple(kept)

    def is_capable(self, provider_id: str, media_type: MediaType) -> bool:
        candidate = self._candidates.get(provider_id)
        return bool(candidate and candidate.serves(media_type))

    def order_for(self, media_type: MediaType) -> list[str]:
        return list(self._order.get(media_type, ()))

    def canonical_for(self, media_type: MediaType) -> str | None:
        return self._canonical.get(media_type)

    def candidate(self, provider_id: str) -> ProviderCandidate | None:
        return self._candidates.get(provider_id)

    def label(self, provider_id: str) -> str:
        candidate = self._candidates.get(provider_id)
        return candidate.label if candidate else provider_id

    def to_dict_list(self) -> list[dict[str, Any]]:
        """Serialize the table for API response."""
        return [
            {
                "id": cap.id,
                "label": cap.label,
                "media_types": sorted(m.value for m in cap.capabilities),
                "callback": cap.callback,
                "order": {
                    m.value: self._order[m].index(cap.id)
                    for m in MediaType if cap.id in self._order[m]
                },
            }
            for cap in self._candidates.values()
        ]


def build_capability_table(settings: Any) -> CapabilityTable:
    """Build the table from the static registry plus configured priorities."""
    order = {
        MediaType.IMAGE: _parse_order(settings.IMAGE_PROVIDERS),
        MediaType.IMAGE_EDIT: _parse_order(settings.IMAGE_EDIT_PROVIDERS),
        MediaType.VIDEO: _parse_order(settings.VIDEO_PROVIDERS),
        MediaType.IMAGE_TO_VIDEO: _parse_order(settings.IMAGE_TO_VIDEO_PROVIDERS),
        MediaType.MUSIC: _parse_order(settings.MUSIC_PROVIDERS),
    }
    canonical: dict[MediaType, str] = {}
    for key, value in _parse_pairs(settings.CANONICAL_PROVIDERS).items():
        try:
            canonical[MediaType.parse(key)] = value
        except ValueError:
            logger.warning("Unknown media type in CANONICAL_PROVIDERS: %s", key)

    table = CapabilityTable(PROVIDER_CANDIDATES, order, canonical)
    logger.info(
        "Capability table initialized: %d providers, orders=%s",
        len(PROVIDER_CANDIDATES),
        {m.value: table.order_for(m) for m in MediaType},
    )
    return table
