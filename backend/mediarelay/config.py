from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """MediaRelay application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "MediaRelay"
    DEBUG: bool = True

    # Public URL providers call back into (webhook ingress lives under /api)
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # --- Redis ---
    REDIS_URL: str = "redis://localhost:6379/0"

    # --- Task store / delivery backends ---
    TASK_STORE: str = "memory"          # memory | redis
    TASK_TTL_SECONDS: int = 86400
    DELIVERY_BACKEND: str = "redis"     # redis | log
    NOTIFY_TIMEOUT: float = 5.0

    # --- Media Volume ---
    MEDIA_VOLUME: str = "media_volume"
    MIN_PAYLOAD_BYTES: int = 10000

    # --- Polling ---
    POLL_INTERVAL_SECONDS: float = 10.0
    POLL_TIMEOUT_SECONDS: float = 600.0
    HTTP_TIMEOUT: float = 120.0

    # --- Gemini (image + Veo video) ---
    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    VEO_MODEL: str = "veo-3.0-generate-preview"

    # --- OpenAI (image + Sora video) ---
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_IMAGE_MODEL: str = "gpt-image-1"
    SORA_MODEL: str = "sora-2"

    # --- xAI Grok (image) ---
    GROK_API_KEY: str = ""
    GROK_BASE_URL: str = "https://api.x.ai/v1"
    GROK_IMAGE_MODEL: str = "grok-2-image"

    # --- Replicate (Kling video) ---
    REPLICATE_API_TOKEN: str = ""
    REPLICATE_BASE_URL: str = "https://api.replicate.com/v1"
    KLING_T2V_MODEL: str = "kwaivgi/kling-v2.1-master"
    KLING_I2V_MODEL: str = "kwaivgi/kling-v2.1"

    # --- Kie.ai (Suno music) ---
    KIE_API_KEY: str = ""
    KIE_BASE_URL: str = "https://api.kie.ai"
    SUNO_MODEL: str = "V5"

    # --- Provider Strategy (comma-separated, in priority order) ---
    IMAGE_PROVIDERS: str = "gemini,openai,grok"
    IMAGE_EDIT_PROVIDERS: str = "gemini,openai"
    VIDEO_PROVIDERS: str = "veo3,sora,kling"
    IMAGE_TO_VIDEO_PROVIDERS: str = "veo3,sora,kling"
    MUSIC_PROVIDERS: str = "suno"

    # Canonical provider per media type for prompt-rewrite strategies
    # (empty → first provider in the priority list above)
    CANONICAL_PROVIDERS: str = "video=kling,image_to_video=kling"

    def callback_url(self, path: str) -> str:
        """Absolute URL for a webhook route, e.g. ``/api/music/callback``."""
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}{path}"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
