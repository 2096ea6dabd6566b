"""Provider adapters and the (provider, media type) → operation table.

Each provider module exposes plain async functions over httpx. The table
built here binds them to settings so the dispatcher can invoke exactly one
operation per attempt:

    ops = build_operations(get_settings(), http_client)
    output = await ops[("gemini", MediaType.IMAGE)](request)
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import httpx

from mediarelay.services.generation_types import GenerationRequest, GenerationTask, MediaType, ProviderOutput
from mediarelay.services.notices import ResultCandidate
from mediarelay.services.providers import gemini, grok, kling, openai, sora, suno, veo

ProviderOperation = Callable[[GenerationRequest], Awaitable[ProviderOutput]]
FollowUpOperation = Callable[[GenerationTask, ResultCandidate], Awaitable[str]]


def build_operations(settings: Any, http_client: httpx.AsyncClient | None = None) -> dict[tuple[str, MediaType], ProviderOperation]:
    s = settings

    def _model(request: GenerationRequest, default: str) -> str:
        return request.options.get("model") or default

    async def gemini_image(request: GenerationRequest) -> ProviderOutput:
        return await gemini.generate_image(
            prompt=request.prompt,
            api_key=s.GEMINI_API_KEY,
            base_url=s.GEMINI_BASE_URL,
            model=_model(request, s.GEMINI_IMAGE_MODEL),
            reference_image=request.reference_image,
            allow_text_only=request.allow_text_only,
            http_client=http_client,
        )

    async def openai_image(request: GenerationRequest) -> ProviderOutput:
        return await openai.generate_image(
            prompt=request.prompt,
            api_key=s.OPENAI_API_KEY,
            base_url=s.OPENAI_BASE_URL,
            model=_model(request, s.OPENAI_IMAGE_MODEL),
            size=request.options.get("size"),
            http_client=http_client,
        )

    async def openai_edit(request: GenerationRequest) -> ProviderOutput:
        return await openai.edit_image(
            prompt=request.prompt,
            reference_image=request.reference_image,
            api_key=s.OPENAI_API_KEY,
            base_url=s.OPENAI_BASE_URL,
            model=_model(request, s.OPENAI_IMAGE_MODEL),
            http_client=http_client,
        )

    async def grok_image(request: GenerationRequest) -> ProviderOutput:
        return await grok.generate_image(
            prompt=request.prompt,
            api_key=s.GROK_API_KEY,
            base_url=s.GROK_BASE_URL,
            model=_model(request, s.GROK_IMAGE_MODEL),
            http_client=http_client,
        )

    async def veo_video(request: GenerationRequest) -> ProviderOutput:
        return await veo.generate_video(
            prompt=request.prompt,
            api_key=s.GEMINI_API_KEY,
            base_url=s.GEMINI_BASE_URL,
            model=_model(request, s.VEO_MODEL),
            reference_image=request.reference_image,
            duration=request.options.get("duration"),
            aspect_ratio=request.options.get("aspect_ratio") or "16:9",
            http_client=http_client,
        )

    async def sora_video(request: GenerationRequest) -> ProviderOutput:
        return await sora.generate_video(
            prompt=request.prompt,
            api_key=s.OPENAI_API_KEY,
            base_url=s.OPENAI_BASE_URL,
            model=_model(request, s.SORA_MODEL),
            reference_image=request.reference_image,
            duration=request.options.get("duration"),
            aspect_ratio=request.options.get("aspect_ratio") or "16:9",
            http_client=http_client,
        )

    async def kling_video(request: GenerationRequest) -> ProviderOutput:
        default_model = s.KLING_I2V_MODEL if request.reference_image else s.KLING_T2V_MODEL
        return await kling.generate_video(
            prompt=request.prompt,
            api_token=s.REPLICATE_API_TOKEN,
            base_url=s.REPLICATE_BASE_URL,
            model=_model(request, default_model),
            reference_image=request.reference_image,
            duration=request.options.get("duration"),
            aspect_ratio=request.options.get("aspect_ratio") or "16:9",
            http_client=http_client,
        )

    async def suno_music(request: GenerationRequest) -> ProviderOutput:
        return await suno.generate_music(
            prompt=request.prompt,
            api_key=s.KIE_API_KEY,
            base_url=s.KIE_BASE_URL,
            callback_url=s.callback_url(suno.MUSIC_CALLBACK_PATH),
            model=_model(request, s.SUNO_MODEL),
            instrumental=bool(request.options.get("instrumental")),
            http_client=http_client,
        )

    return {
        ("gemini", MediaType.IMAGE): gemini_image,
        ("gemini", MediaType.IMAGE_EDIT): gemini_image,
        ("openai", MediaType.IMAGE): openai_image,
        ("openai", MediaType.IMAGE_EDIT): openai_edit,
        ("grok", MediaType.IMAGE): grok_image,
        ("veo3", MediaType.VIDEO): veo_video,
        ("veo3", MediaType.IMAGE_TO_VIDEO): veo_video,
        ("sora", MediaType.VIDEO): sora_video,
        ("sora", MediaType.IMAGE_TO_VIDEO): sora_video,
        ("kling", MediaType.VIDEO): kling_video,
        ("kling", MediaType.IMAGE_TO_VIDEO): kling_video,
        ("suno", MediaType.MUSIC): suno_music,
    }


def build_follow_up_operations(settings: Any, http_client: httpx.AsyncClient | None = None) -> dict[str, FollowUpOperation]:
    """Chained follow-ups, keyed by the provider that produced the first result."""
    s = settings

    async def suno_music_video(task: GenerationTask, candidate: ResultCandidate) -> str:
        return await suno.generate_music_video(
            task_id=task.submission_id,
            audio_id=candidate.candidate_id,
            api_key=s.KIE_API_KEY,
            base_url=s.KIE_BASE_URL,
            callback_url=s.callback_url(suno.VIDEO_CALLBACK_PATH),
            author=task.follow_up_params.get("author"),
            domain_name=task.follow_up_params.get("domain_name"),
            http_client=http_client,
        )

    return {"suno": suno_music_video}
