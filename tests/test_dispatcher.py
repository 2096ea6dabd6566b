"""Tests for single-attempt dispatch and envelope normalization."""

from unittest.mock import AsyncMock

import httpx
import pytest

from mediarelay.errors import ProviderUnavailable
from mediarelay.services.correlator import CompletionCorrelator
from mediarelay.services.delivery import NotificationPort
from mediarelay.services.dispatcher import GenerationDispatcher
from mediarelay.services.generation_types import (
    GenerationRequest,
    GenerationTask,
    MediaType,
    ProviderOutput,
    TaskStatus,
)
from mediarelay.services.notices import ResultCandidate
from mediarelay.services.polling import PollingLoop
from mediarelay.services.status_parsing import PollState, PollStatus

QUEUED = PollStatus(state=PollState.QUEUED)
DONE = PollStatus(state=PollState.COMPLETED, result_ref="https://cdn/out.mp4")


def _polling() -> PollingLoop:
    return PollingLoop(1.0, 60.0, sleep=AsyncMock(), clock=lambda: 0.0)


@pytest.fixture
def make_dispatcher(table, tracker, notifications, media_store, downloader):
    def _make(operations, *, follow_ups=None, notify=None):
        port = notify or notifications
        correlator = CompletionCorrelator(tracker, port, media_store, downloader)
        return GenerationDispatcher(
            operations,
            table,
            tracker,
            correlator,
            port,
            _polling(),
            downloader,
            follow_ups=follow_ups,
        )

    return _make


def _image(prompt: str = "a red fox", **options) -> GenerationRequest:
    return GenerationRequest(media_type=MediaType.IMAGE, prompt=prompt, options=options)


@pytest.mark.asyncio
async def test_media_output_is_success(make_dispatcher, notifier):
    op = AsyncMock(return_value=ProviderOutput(content=b"\x89PNG", text="a fox in snow"))
    dispatcher = make_dispatcher({("gemini", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(), "gemini", context={"channel": "c1"})

    assert envelope.success
    assert envelope.provider == "gemini"
    assert envelope.result_ref == b"\x89PNG"
    assert envelope.description == "a fox in snow"
    progress = notifier.of_type("progress")
    assert progress[0]["message"] == "Attempting Gemini for image..."
    assert progress[0]["provider"] == "gemini"
    assert notifier.messages[0][0] == {"channel": "c1"}


@pytest.mark.asyncio
async def test_alias_is_normalized(make_dispatcher):
    op = AsyncMock(return_value=ProviderOutput(url="https://cdn/fox.png"))
    dispatcher = make_dispatcher({("gemini", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(), "Google")

    assert envelope.success
    assert envelope.provider == "gemini"
    assert envelope.result_ref == "https://cdn/fox.png"


@pytest.mark.asyncio
async def test_text_instead_of_image_is_refusal(make_dispatcher):
    op = AsyncMock(return_value=ProviderOutput(text="I can't draw that", text_only=True))
    dispatcher = make_dispatcher({("gemini", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(), "gemini")

    assert not envelope.success
    assert envelope.error_kind == "provider_refusal"
    assert "I can't draw that" in envelope.error


@pytest.mark.asyncio
async def test_text_only_allowed_by_caller(make_dispatcher):
    op = AsyncMock(return_value=ProviderOutput(text="Here is a description", text_only=True))
    dispatcher = make_dispatcher({("gemini", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(allow_text_only=True), "gemini")

    assert envelope.success
    assert envelope.text_only
    assert envelope.result_ref is None
    assert envelope.description == "Here is a description"


@pytest.mark.asyncio
async def test_empty_output_is_refusal(make_dispatcher):
    op = AsyncMock(return_value=ProviderOutput())
    dispatcher = make_dispatcher({("grok", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(), "grok")

    assert envelope.error_kind == "provider_refusal"


@pytest.mark.asyncio
async def test_callback_submission_is_registered(make_dispatcher, tracker):
    op = AsyncMock(return_value=ProviderOutput(submission_id="kie-1"))
    dispatcher = make_dispatcher({("suno", MediaType.MUSIC): op})
    request = GenerationRequest(
        media_type=MediaType.MUSIC,
        prompt="lofi beats",
        options={"wants_follow_up": True, "follow_up": {"author": "relay"}},
    )

    envelope = await dispatcher.dispatch(request, "suno", context={"channel": "c9"}, attempted=["other"])

    assert envelope.success
    assert envelope.pending
    assert envelope.submission_id == "kie-1"
    assert envelope.result_ref is None

    task = await tracker.lookup("kie-1")
    assert task.status is TaskStatus.AWAITING_CALLBACK
    assert task.provider == "suno"
    assert task.delivery_context == {"channel": "c9"}
    assert task.attempted_providers == {"other", "suno"}
    assert task.wants_follow_up
    assert task.follow_up_params == {"author": "relay"}


@pytest.mark.asyncio
async def test_poll_mode_returns_result_and_settles_task(make_dispatcher, tracker):
    check = AsyncMock(side_effect=[QUEUED, QUEUED, DONE])
    op = AsyncMock(return_value=ProviderOutput(submission_id="pred-1", poll=check))
    dispatcher = make_dispatcher({("kling", MediaType.VIDEO): op})

    envelope = await dispatcher.dispatch(GenerationRequest(MediaType.VIDEO, "waves"), "kling")

    assert envelope.success
    assert not envelope.pending
    assert envelope.result_ref == "https://cdn/out.mp4"
    assert envelope.submission_id == "pred-1"
    assert check.await_count == 3
    assert await tracker.lookup("pred-1") is None


@pytest.mark.asyncio
async def test_poll_mode_downloads_authenticated_result(make_dispatcher, downloader):
    op = AsyncMock(return_value=ProviderOutput(
        submission_id="video_1",
        poll=AsyncMock(return_value=DONE),
        download_headers={"Authorization": "Bearer k"},
    ))
    dispatcher = make_dispatcher({("sora", MediaType.VIDEO): op})

    envelope = await dispatcher.dispatch(GenerationRequest(MediaType.VIDEO, "waves"), "sora")

    assert envelope.success
    assert envelope.result_ref == downloader.payload
    url, kwargs = downloader.calls[0]
    assert url == "https://cdn/out.mp4"
    assert kwargs["headers"] == {"Authorization": "Bearer k"}
    assert kwargs["provider"] == "sora"


@pytest.mark.asyncio
async def test_poll_failure_is_folded_and_task_removed(make_dispatcher, tracker):
    failed = PollStatus(state=PollState.FAILED, error="content policy")
    op = AsyncMock(return_value=ProviderOutput(submission_id="pred-2", poll=AsyncMock(return_value=failed)))
    dispatcher = make_dispatcher({("kling", MediaType.VIDEO): op})

    envelope = await dispatcher.dispatch(GenerationRequest(MediaType.VIDEO, "waves"), "kling")

    assert not envelope.success
    assert envelope.error_kind == "provider_refusal"
    assert "content policy" in envelope.error
    assert await tracker.lookup("pred-2") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc, kind",
    [
        (httpx.ConnectError("connection reset"), "transport_failure"),
        (
            httpx.HTTPStatusError(
                "unauthorized",
                request=httpx.Request("POST", "https://api"),
                response=httpx.Response(401, request=httpx.Request("POST", "https://api")),
            ),
            "provider_unavailable",
        ),
        (
            httpx.HTTPStatusError(
                "bad gateway",
                request=httpx.Request("POST", "https://api"),
                response=httpx.Response(502, request=httpx.Request("POST", "https://api")),
            ),
            "transport_failure",
        ),
        (ProviderUnavailable("GEMINI_API_KEY is not configured"), "provider_unavailable"),
        (RuntimeError("boom"), "generation_error"),
    ],
)
async def test_exceptions_become_error_envelopes(make_dispatcher, exc, kind):
    op = AsyncMock(side_effect=exc)
    dispatcher = make_dispatcher({("gemini", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(), "gemini")

    assert not envelope.success
    assert envelope.error_kind == kind
    assert envelope.error


@pytest.mark.asyncio
async def test_incapable_provider_is_never_invoked(make_dispatcher):
    op = AsyncMock(return_value=ProviderOutput(submission_id="x"))
    dispatcher = make_dispatcher({("suno", MediaType.MUSIC): op, ("suno", MediaType.IMAGE): op})

    envelope = await dispatcher.dispatch(_image(), "suno")

    assert envelope.error_kind == "provider_unavailable"
    op.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_operation(make_dispatcher):
    envelope = await make_dispatcher({}).dispatch(_image(), "openai")
    assert envelope.error_kind == "provider_unavailable"


@pytest.mark.asyncio
@pytest.mark.parametrize("media_type, provider", [
    (MediaType.IMAGE_EDIT, "openai"),
    (MediaType.IMAGE_TO_VIDEO, "kling"),
])
async def test_reference_image_required(make_dispatcher, media_type, provider):
    op = AsyncMock(return_value=ProviderOutput(url="https://x"))
    dispatcher = make_dispatcher({(provider, media_type): op})

    envelope = await dispatcher.dispatch(GenerationRequest(media_type, "make it blue"), provider)

    assert envelope.error_kind == "provider_unavailable"
    assert "reference image" in envelope.error
    op.assert_not_awaited()


@pytest.mark.asyncio
async def test_notifier_failure_does_not_abort(make_dispatcher):
    class BrokenNotifier:
        async def notify(self, context, message):
            raise ConnectionError("redis down")

    op = AsyncMock(return_value=ProviderOutput(url="https://cdn/fox.png"))
    dispatcher = make_dispatcher(
        {("gemini", MediaType.IMAGE): op},
        notify=NotificationPort(BrokenNotifier(), timeout=1.0),
    )

    envelope = await dispatcher.dispatch(_image(), "gemini")

    assert envelope.success


@pytest.mark.asyncio
async def test_metrics_per_provider(make_dispatcher):
    ops = {
        ("gemini", MediaType.IMAGE): AsyncMock(return_value=ProviderOutput(url="https://a")),
        ("grok", MediaType.IMAGE): AsyncMock(side_effect=httpx.ReadTimeout("slow")),
    }
    dispatcher = make_dispatcher(ops)

    await dispatcher.dispatch(_image(), "gemini")
    await dispatcher.dispatch(_image(), "grok")
    await dispatcher.dispatch(_image(), "grok")

    metrics = {m["provider"]: m for m in dispatcher.get_metrics()}
    assert metrics["gemini"]["total_calls"] == 1
    assert metrics["gemini"]["total_errors"] == 0
    assert metrics["grok"]["total_errors"] == 2
    assert metrics["grok"]["error_rate"] == 1.0
    assert metrics["grok"]["errors_by_kind"] == {"transport_failure": 2}


class TestFollowUp:
    @pytest.mark.asyncio
    async def test_follow_up_task_shape(self, make_dispatcher):
        launch = AsyncMock(return_value="mv-7")
        dispatcher = make_dispatcher({}, follow_ups={"suno": launch})
        parent = GenerationTask(
            submission_id="kie-1",
            media_type=MediaType.MUSIC,
            provider="suno",
            prompt="lofi beats",
            delivery_context={"channel": "c1"},
        )
        candidate = ResultCandidate(order=0, url="https://a.mp3", candidate_id="song-a")

        task = await dispatcher.dispatch_follow_up(parent, candidate)

        launch.assert_awaited_once_with(parent, candidate)
        assert task.submission_id == "mv-7"
        assert task.media_type is MediaType.VIDEO
        assert task.provider == "suno"
        assert task.delivery_context == {"channel": "c1"}
        assert task.options == {"follow_up_of": "kie-1", "source_candidate_id": "song-a"}
        assert task.status is TaskStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_no_follow_up_for_provider(self, make_dispatcher):
        parent = GenerationTask(submission_id="p", media_type=MediaType.VIDEO, provider="kling", prompt="x")
        with pytest.raises(ProviderUnavailable):
            await make_dispatcher({}).dispatch_follow_up(parent, ResultCandidate(order=0, candidate_id="c"))
