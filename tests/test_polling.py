"""Tests for the polling loop state machine."""

from unittest.mock import AsyncMock

import httpx
import pytest

from mediarelay.errors import PollTimeout, ProviderRefusal, ProviderUnavailable, TransportFailure
from mediarelay.services.polling import PollingLoop
from mediarelay.services.status_parsing import PollState, PollStatus


class FakeClock:
    """Monotonic clock that only moves when the loop sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _loop(clock: FakeClock, interval: float = 10.0, timeout: float = 600.0) -> PollingLoop:
    return PollingLoop(interval, timeout, sleep=clock.sleep, clock=clock)


QUEUED = PollStatus(state=PollState.QUEUED)
DONE = PollStatus(state=PollState.COMPLETED, result_ref="https://cdn/v.mp4")


@pytest.mark.asyncio
async def test_stops_after_completed_poll():
    clock = FakeClock()
    check = AsyncMock(side_effect=[QUEUED, QUEUED, QUEUED, DONE, QUEUED])

    status = await _loop(clock).run(check, label="job-1")

    assert status.result_ref == "https://cdn/v.mp4"
    assert check.await_count == 4
    assert clock.sleeps == [10.0, 10.0, 10.0, 10.0]


@pytest.mark.asyncio
async def test_failed_status_raises_refusal_with_provider_error():
    clock = FakeClock()
    check = AsyncMock(side_effect=[QUEUED, PollStatus(state=PollState.FAILED, error="nsfw")])

    with pytest.raises(ProviderRefusal, match="nsfw"):
        await _loop(clock).run(check, label="job-2", provider="kling")

    assert check.await_count == 2


@pytest.mark.asyncio
async def test_timeout_terminates_deterministically():
    clock = FakeClock()
    check = AsyncMock(return_value=QUEUED)

    with pytest.raises(PollTimeout) as exc_info:
        await _loop(clock, interval=10.0, timeout=35.0).run(check, label="job-3", provider="sora")

    assert exc_info.value.provider == "sora"
    # last sleep is clipped to the remaining budget; no check after the deadline
    assert clock.sleeps == [10.0, 10.0, 10.0, 5.0]
    assert check.await_count == 4
    assert clock.now == 35.0


@pytest.mark.asyncio
async def test_zero_budget_never_checks():
    clock = FakeClock()
    check = AsyncMock(return_value=DONE)

    with pytest.raises(PollTimeout):
        await _loop(clock, timeout=0).run(check, label="job-4")

    check.assert_not_awaited()


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    clock = FakeClock()
    check = AsyncMock(side_effect=[
        TransportFailure("502 from gateway"),
        httpx.ConnectError("reset"),
        DONE,
    ])

    status = await _loop(clock).run(check, label="job-5")

    assert status is DONE
    assert check.await_count == 3


@pytest.mark.asyncio
async def test_auth_errors_abort():
    clock = FakeClock()
    check = AsyncMock(side_effect=ProviderUnavailable("bad key"))

    with pytest.raises(ProviderUnavailable):
        await _loop(clock).run(check, label="job-6")

    assert check.await_count == 1


@pytest.mark.asyncio
async def test_completed_without_reference_is_refusal():
    clock = FakeClock()
    check = AsyncMock(return_value=PollStatus(state=PollState.COMPLETED))

    with pytest.raises(ProviderRefusal, match="no result reference"):
        await _loop(clock).run(check, label="job-7")


@pytest.mark.asyncio
async def test_unknown_states_keep_polling():
    clock = FakeClock()
    check = AsyncMock(side_effect=[PollStatus(state=PollState.UNKNOWN), DONE])

    await _loop(clock).run(check, label="job-8")

    assert check.await_count == 2
