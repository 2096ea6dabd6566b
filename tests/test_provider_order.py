"""Tests for provider order resolution and candidate rotation."""

import pytest

from mediarelay.config import Settings
from mediarelay.services.capabilities import (
    PROVIDER_CANDIDATES,
    build_capability_table,
    normalize_provider_id,
)
from mediarelay.services.generation_types import MediaType
from mediarelay.services.provider_order import next_candidates, resolve_order


class TestResolveOrder:
    def test_returns_configured_order(self, table):
        assert resolve_order(MediaType.IMAGE, None, table) == ["gemini", "openai", "grok"]
        assert resolve_order(MediaType.VIDEO, None, table) == ["veo3", "sora", "kling"]
        assert resolve_order(MediaType.MUSIC, None, table) == ["suno"]

    def test_accepts_string_media_type(self, table):
        assert resolve_order("image-edit", None, table) == ["gemini", "openai"]

    def test_removes_avoided_provider(self, table):
        assert resolve_order(MediaType.IMAGE, "openai", table) == ["gemini", "grok"]

    def test_avoid_provider_alias_is_normalized(self, table):
        assert resolve_order(MediaType.VIDEO, "sora-2", table) == ["veo3", "kling"]

    @pytest.mark.parametrize("media_type", list(MediaType))
    @pytest.mark.parametrize("avoid", [None, "gemini", "openai", "grok", "veo3", "sora", "kling", "suno"])
    def test_never_returns_avoided_or_incapable(self, table, media_type, avoid):
        order = resolve_order(media_type, avoid, table)
        capable = {c.id for c in PROVIDER_CANDIDATES if c.serves(media_type)}
        assert avoid not in order
        assert set(order) <= capable

    def test_incapable_configured_providers_are_dropped(self, tmp_path):
        settings = Settings(
            _env_file=None,
            MEDIA_VOLUME=str(tmp_path),
            IMAGE_PROVIDERS="gemini,suno,openai,nonexistent,gemini",
            MUSIC_PROVIDERS="suno,kling",
        )
        table = build_capability_table(settings)
        assert resolve_order(MediaType.IMAGE, None, table) == ["gemini", "openai"]
        assert resolve_order(MediaType.MUSIC, None, table) == ["suno"]

    def test_canonical_provider(self, table):
        assert table.canonical_for(MediaType.VIDEO) == "kling"
        assert table.canonical_for(MediaType.IMAGE_TO_VIDEO) == "kling"
        assert table.canonical_for(MediaType.IMAGE) == "gemini"

    def test_incapable_canonical_falls_back_to_first(self, tmp_path):
        settings = Settings(
            _env_file=None,
            MEDIA_VOLUME=str(tmp_path),
            CANONICAL_PROVIDERS="image=suno",
        )
        table = build_capability_table(settings)
        assert table.canonical_for(MediaType.IMAGE) == "gemini"


class TestNextCandidates:
    ORDER = ["a", "b", "c", "d"]

    def test_nothing_attempted_returns_full_order(self):
        assert next_candidates(set(), self.ORDER, None) == self.ORDER

    def test_starts_right_after_last_tried(self):
        assert next_candidates({"b"}, self.ORDER, "b") == ["c", "d", "a"]

    def test_wraps_around(self):
        assert next_candidates({"d"}, self.ORDER, "d") == ["a", "b", "c"]

    def test_skips_every_attempted(self):
        result = next_candidates({"a", "c"}, self.ORDER, "c")
        assert result == ["d", "b"]
        assert not {"a", "c"} & set(result)

    def test_unknown_last_tried_starts_at_zero(self):
        assert next_candidates({"x"}, self.ORDER, "x") == self.ORDER

    def test_deduplicates(self):
        assert next_candidates(set(), ["a", "b", "a", "c"], None) == ["a", "b", "c"]

    def test_everything_attempted(self):
        assert next_candidates(set(self.ORDER), self.ORDER, "a") == []


def test_normalize_provider_id():
    assert normalize_provider_id("Sora-2") == "sora"
    assert normalize_provider_id("veo") == "veo3"
    assert normalize_provider_id("gemini") == "gemini"
    assert normalize_provider_id(None) is None
