"""Generation API: trigger a generation with layered fallback."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from mediarelay.errors import StrategyExhausted
from mediarelay.schemas import GenerateRequest, GenerateResponse
from mediarelay.services.runtime import Runtime, get_runtime

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    response: Response,
    runtime: Runtime = Depends(get_runtime),
) -> GenerateResponse:
    """Generate media, falling back across providers and prompt rewrites.

    With ``wait=false`` the generation runs in the background and the result
    is delivered to ``channel`` (see ``WS /ws/{channel}``).
    """
    request = body.to_generation_request()
    context = body.to_delivery_context()

    if not body.wait:
        runtime.start_background(request, context)
        response.status_code = 202
        return GenerateResponse(success=True, pending=True, description="Generation started")

    try:
        envelope = await runtime.escalator.escalate(
            request,
            context=context,
            avoid_provider=body.avoid_provider,
            providers_tried=body.providers_tried,
        )
    except StrategyExhausted as e:
        raise HTTPException(
            status_code=502,
            detail={
                "message": e.message,
                "code": "STRATEGY_EXHAUSTED",
                "details": e.to_dict(),
            },
        )

    result = runtime.materialize(request, envelope)
    return GenerateResponse(
        success=envelope.success,
        provider=envelope.provider,
        pending=envelope.pending,
        submission_id=envelope.submission_id,
        url=result.url if result else None,
        local_path=result.local_path if result else None,
        description=envelope.description,
        text_only=envelope.text_only,
        strategy=envelope.metadata.get("strategy"),
        attempts=envelope.metadata.get("attempts", []),
    )
