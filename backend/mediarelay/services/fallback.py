"""Layered fallback for a failed generation.

Strategies run in a fixed order, each at most once, and stop at the first
success:
  1. alternate-provider  every remaining same-media provider, rotated after
                         the last one tried
  2. simplify-prompt     simplified prompt on the canonical provider
  3. generalize-prompt   generalized prompt on the canonical provider
A prompt strategy whose rewrite is a no-op is skipped. ``avoid_provider``
only leaves the alternate-provider rotation: the prompt strategies always
run on the canonical provider, even when it is the avoided one. When
everything has failed, StrategyExhausted carries the full trail back to the
caller. There is no second pass over the provider order.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from mediarelay.errors import StrategyExhausted
from mediarelay.services.capabilities import CapabilityTable, normalize_provider_id
from mediarelay.services.delivery import NotificationPort
from mediarelay.services.dispatcher import GenerationDispatcher
from mediarelay.services.generation_types import (
    FallbackAttempt,
    FallbackStrategy,
    GenerationEnvelope,
    GenerationRequest,
    MediaType,
)
from mediarelay.services.prompt_transforms import generalize_prompt, simplify_prompt
from mediarelay.services.provider_order import next_candidates, resolve_order

logger = logging.getLogger(__name__)

_VIDEO_TYPES = (MediaType.VIDEO, MediaType.IMAGE_TO_VIDEO)

_PROMPT_STRATEGIES: tuple[tuple[FallbackStrategy, Callable[[str], str], str], ...] = (
    (FallbackStrategy.SIMPLIFY_PROMPT, simplify_prompt, "Simplifying the request..."),
    (FallbackStrategy.GENERALIZE_PROMPT, generalize_prompt, "Generalizing the request..."),
)


def guidance_for(media_type: MediaType) -> str:
    if media_type in _VIDEO_TYPES:
        return "The request needs a video, not an image. Try rephrasing it or asking for a different video style."
    return "Try phrasing the request differently."


class FallbackEscalator:
    def __init__(
        self,
        dispatcher: GenerationDispatcher,
        table: CapabilityTable,
        notifications: NotificationPort,
    ) -> None:
        self.dispatcher = dispatcher
        self.table = table
        self.notifications = notifications

    async def escalate(
        self,
        request: GenerationRequest,
        *,
        context: dict[str, Any] | None = None,
        avoid_provider: str | None = None,
        providers_tried: Iterable[str] | None = None,
    ) -> GenerationEnvelope:
        """Generate ``request``, escalating through the strategies until one succeeds.

        ``providers_tried`` lists providers that already failed for this
        request upstream; they are skipped and the last one seeds the
        rotation. ``avoid_provider`` is dropped from the rotation but not
        from the prompt strategies. Raises StrategyExhausted when nothing works.
        """
        media_type = request.media_type
        context = context or {}
        tried = [p for p in (normalize_provider_id(x) for x in providers_tried or ()) if p]
        avoid = normalize_provider_id(avoid_provider)

        attempted: set[str] = set(tried)
        if avoid:
            attempted.add(avoid)
        attempts: list[FallbackAttempt] = []

        order = resolve_order(media_type, avoid, self.table)
        last_tried = tried[-1] if tried else None

        for provider in next_candidates(attempted, order, last_tried):
            if attempts or tried:
                await self.notifications.emit(
                    context,
                    f"Trying another provider: {self.table.label(provider)}...",
                    strategy=FallbackStrategy.ALTERNATE_PROVIDER.value,
                )
            envelope = await self._attempt(
                FallbackStrategy.ALTERNATE_PROVIDER, request, provider, context, attempted, attempts,
            )
            if envelope.success:
                return envelope

        canonical = self.table.canonical_for(media_type)
        for strategy, transform, notice in _PROMPT_STRATEGIES:
            rewritten = transform(request.prompt)
            if not rewritten or rewritten == request.prompt:
                logger.info("%s: rewrite is a no-op, skipping", strategy.value)
                continue
            if canonical is None:
                logger.warning("%s: no canonical provider for %s", strategy.value, media_type.value)
                continue

            logger.info("%s: %r -> %r", strategy.value, request.prompt, rewritten)
            await self.notifications.emit(context, notice, strategy=strategy.value)
            envelope = await self._attempt(
                strategy, request.with_prompt(rewritten), canonical, context, attempted, attempts,
            )
            if envelope.success:
                return envelope

        raise self._exhausted(media_type, attempts)

    async def _attempt(
        self,
        strategy: FallbackStrategy,
        request: GenerationRequest,
        provider: str,
        context: dict[str, Any],
        attempted: set[str],
        attempts: list[FallbackAttempt],
    ) -> GenerationEnvelope:
        envelope = await self.dispatcher.dispatch(request, provider, context=context, attempted=attempted)
        attempted.add(provider)
        attempts.append(FallbackAttempt(
            strategy=strategy,
            provider=provider,
            prompt=request.prompt,
            success=envelope.success,
            error=envelope.error,
        ))
        logger.info(
            "Attempt %d [%s] %s: %s",
            len(attempts), strategy.value, provider,
            "success" if envelope.success else f"failed ({envelope.error_kind})",
        )
        if envelope.success:
            envelope.metadata = {
                **envelope.metadata,
                "strategy": strategy.value,
                "attempts": [a.to_dict() for a in attempts],
            }
        return envelope

    def _exhausted(self, media_type: MediaType, attempts: list[FallbackAttempt]) -> StrategyExhausted:
        providers = [a.provider for a in attempts if a.strategy is FallbackStrategy.ALTERNATE_PROVIDER]
        prompt_strategies = [a.strategy.value for a in attempts if a.strategy is not FallbackStrategy.ALTERNATE_PROVIDER]
        message = (
            f"All strategies failed for {media_type.value}: "
            f"providers [{', '.join(providers) or 'none'}], "
            f"prompt rewrites [{', '.join(prompt_strategies) or 'none'}]"
        )
        logger.error(message)
        return StrategyExhausted(
            message,
            media_type=media_type.value,
            attempts=attempts,
            guidance=guidance_for(media_type),
        )
