from __future__ import annotations

import asyncio

import pytest

from mediagen.services.errors import (
    ExecutionCancelledError,
    PollingTimeoutError,
    ProtocolError,
    RemoteError,
    TransportError,
    UnsupportedOperationError,
)
from mediagen.services.execution import PollingPolicy, execute_async
from mediagen.services.providers.base import InterfaceMode

FOX = {"prompt": "a red fox"}


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_job_id_is_protocol_error_with_zero_polls(make_instance, transport, sleeps):
    transport.responses.append({"status": "starting"})
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(ProtocolError, match="job id"):
        await execute_async(instance, FOX, transport)

    assert len(transport.posts) == 1
    assert transport.gets == []
    assert sleeps == []


@pytest.mark.asyncio
async def test_submission_is_never_retried(make_instance, transport, sleeps):
    transport.responses.append(TransportError("API request failed: connection reset"))
    instance = make_instance("fal", "flux1Dev")

    with pytest.raises(TransportError):
        await execute_async(instance, FOX, transport, policy=PollingPolicy(transport_retries=3))

    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_async_on_sync_only_config_is_unsupported(make_instance, transport, monkeypatch):
    instance = make_instance("replicate", "zImageTurbo")
    monkeypatch.setattr(
        type(instance.bundle),
        "config",
        type(instance.config)(
            name="syncOnly",
            display_name="Sync Only",
            endpoint="/v1/predictions",
            supports_sync=True,
            supports_async=False,
        ),
    )

    with pytest.raises(UnsupportedOperationError):
        await execute_async(instance, FOX, transport)
    assert transport.calls == []


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_polls_until_succeeded_and_waits_between_polls(make_instance, transport, sleeps):
    final = {"id": "abc", "status": "succeeded", "output": ["https://x/y.png"]}
    transport.responses.extend(
        [
            {"id": "abc", "status": "starting"},
            {"id": "abc", "status": "starting"},
            {"id": "abc", "status": "processing"},
            final,
        ]
    )
    instance = make_instance("replicate", "zImageTurbo")

    result = await execute_async(instance, FOX, transport)

    assert len(transport.gets) == 3
    assert all(c.url == "https://api.replicate.com/v1/predictions/abc" for c in transport.gets)
    assert sleeps == [2.0, 2.0]
    assert result.mode is InterfaceMode.ASYNC
    assert result.job_id == "abc"
    assert result.outputs == ["https://x/y.png"]
    assert result.payload == {
        "prediction_id": "abc",
        "status": "succeeded",
        "output": ["https://x/y.png"],
    }


@pytest.mark.asyncio
async def test_failed_job_raises_remote_error_and_stops_polling(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"id": "abc", "status": "starting"},
            {"id": "abc", "status": "processing"},
            {"id": "abc", "status": "failed", "error": "CUDA out of memory"},
            {"id": "abc", "status": "succeeded"},  # must never be fetched
        ]
    )
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(RemoteError) as exc_info:
        await execute_async(instance, FOX, transport)

    assert exc_info.value.vendor_message == "CUDA out of memory"
    assert "CUDA out of memory" in str(exc_info.value)
    assert len(transport.gets) == 2
    assert len(transport.responses) == 1


@pytest.mark.asyncio
async def test_interval_comes_from_policy(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "r1"},
            {"status": "IN_QUEUE"},
            {"status": "COMPLETED", "images": [{"url": "https://fal.media/1.jpg"}]},
        ]
    )
    instance = make_instance("fal", "zImageTurbo")

    await execute_async(instance, FOX, transport, policy=PollingPolicy(interval=5.0))

    assert sleeps == [5.0]


# ---------------------------------------------------------------------------
# FAL result fetch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fal_fetches_result_after_completed_status(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "req-1", "status": "IN_QUEUE"},
            {"status": "IN_PROGRESS"},
            {"status": "COMPLETED"},
            {"video": {"url": "https://fal.media/v.mp4"}},
        ]
    )
    instance = make_instance("fal", "veo31Fast")

    result = await execute_async(instance, FOX, transport)

    assert transport.posts[0].url == "https://queue.fal.run/fal-ai/veo3.1/fast"
    assert [c.url for c in transport.gets] == [
        "https://queue.fal.run/fal-ai/veo3.1/fast/requests/req-1/status",
        "https://queue.fal.run/fal-ai/veo3.1/fast/requests/req-1/status",
        "https://queue.fal.run/fal-ai/veo3.1/fast/requests/req-1",
    ]
    assert transport.posts[0].headers["Authorization"].startswith("Key ")
    assert result.outputs == ["https://fal.media/v.mp4"]
    assert result.job_id == "req-1"
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_fal_result_fetch_404_falls_back_to_status(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "req-2"},
            {"status": "COMPLETED"},
            RemoteError("API request failed: Not Found", status_code=404),
        ]
    )
    instance = make_instance("fal", "flux1Dev")

    result = await execute_async(instance, FOX, transport)

    assert result.status == "COMPLETED"
    assert result.job_id == "req-2"
    assert len(transport.gets) == 2


@pytest.mark.asyncio
async def test_fal_result_fetch_server_error_propagates(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "req-3"},
            {"status": "COMPLETED"},
            RemoteError("API request failed: boom", status_code=500),
        ]
    )
    instance = make_instance("fal", "flux1Dev")

    with pytest.raises(RemoteError):
        await execute_async(instance, FOX, transport)


@pytest.mark.asyncio
async def test_fal_completed_status_with_images_skips_result_fetch(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "req-4"},
            {"status": "COMPLETED", "images": [{"url": "https://fal.media/2.png"}]},
        ]
    )
    instance = make_instance("fal", "flux1Dev")

    result = await execute_async(instance, FOX, transport)

    assert len(transport.gets) == 1
    assert result.outputs == ["https://fal.media/2.png"]


# ---------------------------------------------------------------------------
# Genbo envelope and classification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_genbo_unwraps_envelope_and_trusts_result_urls(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"code": 200, "data": {"task_id": "t-1"}},
            {"code": 200, "data": {"task_status": "PROCESSING"}},
            {
                "code": 200,
                "data": {
                    "task_id": "t-1",
                    "task_status": "PROCESSING",
                    "task_result": {"urls": ["https://g.test/1.png"]},
                },
            },
        ]
    )
    instance = make_instance("genbo", "zImageTurbo")

    result = await execute_async(instance, FOX, transport)

    assert transport.posts[0].url == "https://api.genbo.ai/v1/images/generations"
    assert transport.posts[0].body["model"] == "Z-image-turbo"
    assert transport.gets[0].url == "https://api.genbo.ai/v1/images/generations/t-1"
    assert transport.gets[0].headers["Accept"] == "application/json"
    assert result.outputs == ["https://g.test/1.png"]
    assert result.job_id == "t-1"
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_genbo_video_polls_its_own_status_endpoint(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"task_id": "t-9"},
            {"status": "succeeded", "result": "https://g.test/v.mp4"},
        ]
    )
    instance = make_instance("genbo", "wan22T2V")

    result = await execute_async(instance, FOX, transport)

    assert transport.posts[0].url == "https://api.genbo.ai/v1/video/generations"
    assert transport.gets[0].url == "https://api.genbo.ai/v1/videos/generations/t-9"
    assert result.outputs == ["https://g.test/v.mp4"]


@pytest.mark.asyncio
async def test_genbo_failed_status_reports_reason(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"data": {"task_id": "t-2"}},
            {"data": {"task_status": "FAILED", "fail_reason": "content policy"}},
        ]
    )
    instance = make_instance("genbo", "flux2Dev")

    with pytest.raises(RemoteError, match="content policy"):
        await execute_async(instance, FOX, transport)


@pytest.mark.asyncio
async def test_genbo_vendor_error_code_is_remote_error(make_instance, transport, sleeps):
    transport.responses.append({"code": 40100, "message": "invalid api key"})
    instance = make_instance("genbo", "flux2Dev")

    with pytest.raises(RemoteError, match="invalid api key"):
        await execute_async(instance, FOX, transport)
    assert transport.gets == []


# ---------------------------------------------------------------------------
# Bounds: max wait, cancellation, transport retry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_max_wait_raises_polling_timeout(make_instance, transport, sleeps):
    transport.responses.extend([{"id": "abc"}, {"id": "abc", "status": "processing"}])
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(PollingTimeoutError) as exc_info:
        await execute_async(
            instance, FOX, transport, policy=PollingPolicy(interval=2.0, max_wait=1.0)
        )

    assert exc_info.value.job_id == "abc"
    assert len(transport.gets) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_cancel_token_stops_polling(make_instance, transport):
    cancel = asyncio.Event()
    transport.responses.extend(
        [
            {"id": "abc"},
            {"id": "abc", "status": "processing"},
            {"id": "abc", "status": "succeeded"},
        ]
    )

    def cancel_after_first_poll(call_count: int) -> None:
        if call_count == 2:
            cancel.set()

    transport.on_call = cancel_after_first_poll
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(ExecutionCancelledError) as exc_info:
        await execute_async(
            instance, FOX, transport, policy=PollingPolicy(interval=30.0), cancel_token=cancel
        )

    assert exc_info.value.job_id == "abc"
    assert len(transport.gets) == 1


@pytest.mark.asyncio
async def test_poll_transport_error_is_retried_when_enabled(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"id": "abc"},
            TransportError("API request timed out after 30s"),
            {"id": "abc", "status": "succeeded", "output": "https://x/y.png"},
        ]
    )
    instance = make_instance("replicate", "zImageTurbo")

    result = await execute_async(
        instance, FOX, transport, policy=PollingPolicy(interval=2.0, transport_retries=1)
    )

    assert result.outputs == ["https://x/y.png"]
    assert len(transport.gets) == 2
    assert sleeps == [4.0]


@pytest.mark.asyncio
async def test_poll_transport_error_propagates_by_default(make_instance, transport, sleeps):
    transport.responses.extend([{"id": "abc"}, TransportError("API request failed: reset")])
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(TransportError):
        await execute_async(instance, FOX, transport)
    assert len(transport.gets) == 1


@pytest.mark.asyncio
async def test_cancel_token_interrupts_retry_backoff(make_instance, transport):
    cancel = asyncio.Event()
    transport.responses.extend(
        [
            {"id": "abc"},
            TransportError("API request failed: connection reset"),
            {"id": "abc", "status": "succeeded"},
        ]
    )

    def cancel_during_failed_poll(call_count: int) -> None:
        if call_count == 2:
            cancel.set()

    transport.on_call = cancel_during_failed_poll
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(ExecutionCancelledError) as exc_info:
        await asyncio.wait_for(
            execute_async(
                instance,
                FOX,
                transport,
                policy=PollingPolicy(interval=30.0, transport_retries=3),
                cancel_token=cancel,
            ),
            timeout=5,
        )

    assert exc_info.value.phase == "polling"
    assert len(transport.gets) == 1


@pytest.mark.asyncio
async def test_max_wait_bounds_retry_backoff(make_instance, transport, sleeps):
    transport.responses.extend(
        [{"id": "abc"}, TransportError("API request timed out after 30s")]
    )
    instance = make_instance("replicate", "zImageTurbo")

    with pytest.raises(PollingTimeoutError) as exc_info:
        await execute_async(
            instance,
            FOX,
            transport,
            policy=PollingPolicy(interval=2.0, max_wait=3.0, transport_retries=1),
        )

    assert exc_info.value.job_id == "abc"
    assert exc_info.value.to_dict()["phase"] == "polling"
    assert len(transport.gets) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_cancel_before_submission_makes_no_call(make_instance, transport):
    cancel = asyncio.Event()
    cancel.set()
    instance = make_instance("fal", "flux1Dev")

    with pytest.raises(ExecutionCancelledError) as exc_info:
        await execute_async(instance, FOX, transport, cancel_token=cancel)

    assert exc_info.value.job_id is None
    assert exc_info.value.phase == "submitting"
    assert transport.calls == []


# ---------------------------------------------------------------------------
# Image, video and audio inputs
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_genbo_failure_prefers_fail_reason(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"data": {"task_id": "t-3"}},
            {
                "data": {
                    "task_status": "FAILED",
                    "error": "internal",
                    "fail_reason": "image could not be downloaded",
                }
            },
        ]
    )
    instance = make_instance("genbo", "flux2Edit")

    with pytest.raises(RemoteError) as exc_info:
        await execute_async(
            instance,
            {"prompt": "add a hat", "image_url": "https://example.com/cat.png"},
            transport,
        )

    assert exc_info.value.vendor_message == "image could not be downloaded"


@pytest.mark.asyncio
async def test_genbo_audio_polls_audio_status_endpoint(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"code": 200, "data": {"task_id": "a-1"}},
            {"code": 200, "data": {"task_status": "PROCESSING"}},
            {"code": 200, "data": {"task_status": "SUCCESS", "task_result": {"url": "https://g.test/a.wav"}}},
        ]
    )
    instance = make_instance("genbo", "soulXPodcastSingle")

    result = await execute_async(instance, {"prompt": "hello and welcome"}, transport)

    assert transport.posts[0].url == "https://api.genbo.ai/v1/audio/generations"
    assert transport.posts[0].body == {
        "model": "SoulX-Podcast-Single",
        "prompt": "hello and welcome",
        "choose_language": 1,
        "temperature": 0.6,
    }
    assert [c.url for c in transport.gets] == [
        "https://api.genbo.ai/v1/audio/generations/a-1",
        "https://api.genbo.ai/v1/audio/generations/a-1",
    ]
    assert result.outputs == ["https://g.test/a.wav"]
    assert instance.config.media_type.value == "audio"


@pytest.mark.asyncio
async def test_genbo_animate_move_sends_image_and_video(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"task_id": "v-1"},
            {"status": "SUCCESS", "task_result": {"video_url": "https://g.test/out.mp4"}},
        ]
    )
    instance = make_instance("genbo", "wan22AnimateMove")

    result = await execute_async(
        instance,
        {"image_url": "https://example.com/me.png", "video_url": "https://example.com/dance.mp4"},
        transport,
    )

    assert transport.posts[0].body["video_url"] == "https://example.com/dance.mp4"
    assert transport.gets[0].url == "https://api.genbo.ai/v1/videos/generations/v-1"
    assert result.outputs == ["https://g.test/out.mp4"]


@pytest.mark.asyncio
async def test_fal_image_to_video_submits_to_queue(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "req-9"},
            {"status": "COMPLETED"},
            {"video": {"url": "https://fal.media/kling.mp4"}},
        ]
    )
    instance = make_instance("fal", "klingV26ProI2V")

    result = await execute_async(
        instance,
        {"prompt": "she turns and smiles", "image_url": "https://example.com/portrait.jpg"},
        transport,
    )

    assert transport.posts[0].url == "https://queue.fal.run/fal-ai/kling-video/v2.6/pro/image-to-video"
    assert transport.posts[0].body["image_url"] == "https://example.com/portrait.jpg"
    assert transport.gets[-1].url.endswith("/requests/req-9")
    assert result.outputs == ["https://fal.media/kling.mp4"]


@pytest.mark.asyncio
async def test_fal_tts_audio_in_status_skips_result_fetch(make_instance, transport, sleeps):
    transport.responses.extend(
        [
            {"request_id": "req-5"},
            {"status": "COMPLETED", "audio": {"url": "https://fal.media/speech.mp3"}},
        ]
    )
    instance = make_instance("fal", "elevenlabsTtsV3")

    result = await execute_async(instance, {"text": "Good morning."}, transport)

    assert transport.posts[0].body["text"] == "Good morning."
    assert transport.posts[0].body["voice"] == "Rachel"
    assert len(transport.gets) == 1
    assert result.outputs == ["https://fal.media/speech.mp3"]
