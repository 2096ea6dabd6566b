"""Polling loop for providers without callback support.

State machine:
    queued / in_progress --(interval)--> re-check
        -> completed  : return the result reference
        -> failed     : raise ProviderRefusal with the provider's error
        -> budget spent: raise PollTimeout (never loops past the deadline)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from mediarelay.errors import PollTimeout, ProviderRefusal, TransportFailure
from mediarelay.services.status_parsing import PollState, PollStatus

logger = logging.getLogger(__name__)

StatusCheck = Callable[[], Awaitable[PollStatus]]


class PollingLoop:
    """Fixed-interval poller with a wall-clock budget.

    ``sleep`` and ``clock`` are injectable so tests can drive the loop
    without real waiting.
    """

    def __init__(
        self,
        interval: float = 10.0,
        timeout: float = 600.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    async def run(self, check: StatusCheck, *, label: str, provider: str | None = None) -> PollStatus:
        """Poll ``check`` until the job reaches a terminal state or the budget runs out."""
        deadline = self._clock() + self.timeout
        attempt = 0

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning("%s: poll budget of %.0fs exhausted after %d checks", label, self.timeout, attempt)
                raise PollTimeout(
                    f"{label} timed out after {self.timeout:.0f}s",
                    provider=provider,
                )

            await self._sleep(min(self.interval, remaining))
            attempt += 1

            try:
                status = await check()
            except (TransportFailure, httpx.TransportError) as e:
                logger.warning("%s: poll #%d transient error: %s", label, attempt, e)
                continue

            logger.info(
                "%s: poll #%d state=%s progress=%s",
                label, attempt, status.state.value, status.progress,
            )

            if status.state is PollState.COMPLETED:
                if not status.result_ref:
                    raise ProviderRefusal(
                        f"{label} completed but returned no result reference",
                        provider=provider,
                    )
                return status

            if status.state is PollState.FAILED:
                raise ProviderRefusal(
                    f"{label} failed: {status.error or 'unknown error'}",
                    provider=provider,
                )
