from __future__ import annotations
"""Pydantic v2 schemas for the generation API."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from mediarelay.services.generation_types import GenerationRequest, MediaType


class GenerateRequest(BaseModel):
    """Schema for triggering a generation."""

    media_type: MediaType
    prompt: str = Field(min_length=1)
    options: dict[str, Any] = Field(default_factory=dict)
    reference_image: str | None = None
    allow_text_only: bool = False
    wants_follow_up: bool = False
    follow_up: dict[str, Any] = Field(default_factory=dict)
    avoid_provider: str | None = None
    providers_tried: list[str] = Field(default_factory=list)

    # Delivery: results for wait=False (and callback-mode jobs) go to this channel
    channel: str | None = None
    delivery_context: dict[str, Any] = Field(default_factory=dict)
    wait: bool = True

    @field_validator("media_type", mode="before")
    @classmethod
    def parse_media_type(cls, v: Any) -> MediaType:
        """Accept `image-edit` as well as `image_edit`."""
        return MediaType.parse(v)

    def to_generation_request(self) -> GenerationRequest:
        options = dict(self.options)
        if self.reference_image:
            options["reference_image"] = self.reference_image
        if self.allow_text_only:
            options["allow_text_only"] = True
        if self.wants_follow_up:
            options["wants_follow_up"] = True
        if self.follow_up:
            options["follow_up"] = self.follow_up
        if self.avoid_provider:
            options["avoid_provider"] = self.avoid_provider
        if self.providers_tried:
            options["providers_tried"] = list(self.providers_tried)
        return GenerationRequest(media_type=self.media_type, prompt=self.prompt, options=options)

    def to_delivery_context(self) -> dict[str, Any]:
        context = dict(self.delivery_context)
        if self.channel:
            context["channel"] = self.channel
        return context


class GenerateResponse(BaseModel):
    """Schema for a generation outcome."""

    success: bool
    provider: str | None = None
    pending: bool = False
    submission_id: str | None = None
    url: str | None = None
    local_path: str | None = None
    description: str = ""
    text_only: bool = False
    strategy: str | None = None
    attempts: list[dict[str, Any]] = Field(default_factory=list)


class TaskRead(BaseModel):
    """Schema for reading a tracked task."""

    submission_id: str
    media_type: str
    provider: str
    status: str
    prompt: str
    attempted_providers: list[str]
    wants_follow_up: bool
    created_at: float
