"""Genbo platform provider.

Async only: POST {base}{endpoint} → task_id (possibly wrapped in ``data``),
then GET {base}{status_endpoint or endpoint}/{task_id} until the task
reports a terminal status or the payload already carries result URLs.
Auth header: ``Authorization: Bearer <apiKey>``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from mediagen.config import get_settings
from mediagen.services.providers.base import (
    ExecutionResult,
    InterfaceMode,
    JobStatus,
    MediaType,
    ModelBundle,
    ModelConfig,
    PlatformId,
    PlatformProtocol,
    RequestDescriptor,
    boolean,
    choice,
    integer,
    media_url,
    number,
    put,
    require_prompt,
    text,
)

logger = logging.getLogger(__name__)

_SUCCESS_STATUSES = {"SUCCESS", "COMPLETED", "DONE", "FINISHED", "SUCCEEDED", "OK"}
_FAILED_STATUSES = {"FAILED", "ERROR", "FAILURE", "CANCELLED", "ABORTED", "REJECTED"}
_IN_PROGRESS_STATUSES = {
    "PENDING", "PROCESSING", "IN_PROGRESS", "IN PROGRESS", "RUNNING",
    "QUEUED", "QUEUE", "WAITING", "STARTED", "ACTIVE",
}
_STATUS_KEYS = ("task_status", "status", "state", "taskStatus")

ASPECT_RATIOS = ("1:1", "16:9", "3:4", "4:3", "9:16")


class GenboProtocol(PlatformProtocol):
    platform = PlatformId.GENBO
    display_name = "Genbo"
    credential_name = "genboApi"
    secret_field = "apiKey"
    auth_scheme = "Bearer"
    failure_keys = ("fail_reason", "error", "message", "reason", "error_message")

    def __init__(self, base_url: str | None = None) -> None:
        self.base_url = (base_url or get_settings().GENBO_BASE_URL).rstrip("/")

    def auth_headers(self, secret: str) -> dict[str, str]:
        headers = super().auth_headers(secret)
        headers["Accept"] = "application/json"
        return headers

    def sync_url(self, config: ModelConfig) -> str:
        return f"{self.base_url}{config.sync_endpoint or config.endpoint}"

    def submit_url(self, config: ModelConfig) -> str:
        return f"{self.base_url}{config.endpoint}"

    def status_url(self, config: ModelConfig, job_id: str) -> str:
        return f"{self.base_url}{config.status_endpoint or config.endpoint}/{job_id}"

    def extract_job_id(self, response: Mapping[str, Any]) -> str | None:
        task_id = self.unwrap(response).get("task_id") or response.get("task_id")
        return str(task_id) if task_id else None

    def unwrap(self, response: Mapping[str, Any]) -> dict[str, Any]:
        data = response.get("data")
        if isinstance(data, Mapping) and data:
            return dict(data)
        return dict(response)

    def classify(self, status: Mapping[str, Any]) -> JobStatus:
        # A payload that already carries results is finished whatever it says.
        if has_result(status):
            return JobStatus.SUCCEEDED

        raw_status = next((status[k] for k in _STATUS_KEYS if status.get(k)), None)
        if raw_status is None:
            return JobStatus.IN_PROGRESS

        normalized = str(raw_status).upper()
        if normalized in _SUCCESS_STATUSES:
            return JobStatus.SUCCEEDED
        if normalized in _FAILED_STATUSES:
            return JobStatus.FAILED
        if normalized not in _IN_PROGRESS_STATUSES:
            logger.debug("Genbo: unrecognized task status %r, treating as in progress", raw_status)
        return JobStatus.IN_PROGRESS

    def vendor_error(self, response: Mapping[str, Any]) -> str | None:
        code = response.get("code")
        if code is None or code in (0, 200, "0", "200"):
            return None
        return str(response.get("message") or response.get("msg") or f"Genbo error code {code}")


def has_result(status: Mapping[str, Any]) -> bool:
    task_result = status.get("task_result")
    if isinstance(task_result, Mapping) and any(
        task_result.get(k)
        for k in ("url", "urls", "image_url", "image_urls", "video_url", "audio_url")
    ):
        return True
    if status.get("result") or status.get("url"):
        return True
    return any(
        isinstance(status.get(k), list) and len(status[k]) > 0
        for k in ("images", "urls", "image_urls")
    )


class GenboModel(ModelBundle):
    """Genbo models return the (unwrapped) vendor payload unchanged."""

    platform = PlatformId.GENBO

    def normalize_sync_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        return self._normalize(raw, InterfaceMode.SYNC)

    def normalize_async_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        return self._normalize(raw, InterfaceMode.ASYNC)

    def _normalize(self, raw: Mapping[str, Any], mode: InterfaceMode) -> ExecutionResult:
        status = next((str(raw[k]) for k in _STATUS_KEYS if raw.get(k)), "SUCCESS")
        task_id = raw.get("task_id")
        return self._result(
            raw,
            mode=mode,
            status=status,
            job_id=str(task_id) if task_id else None,
        )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class ZImageTurboModel(GenboModel):
    config = ModelConfig(
        name="zImageTurbo",
        display_name="Z-image-turbo",
        endpoint="/v1/images/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    defaults = {
        "image_size": "16:9",
        "num_images": 1,
        "num_inference_steps": 9,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"model": "Z-image-turbo", "prompt": require_prompt(merged)}
        put(body, "image_size", choice(merged, "image_size", ASPECT_RATIOS))
        put(body, "num_images", integer(merged, "num_images", minimum=1, maximum=4))
        put(body, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class Flux2DevModel(GenboModel):
    config = ModelConfig(
        name="flux2Dev",
        display_name="Flux.2-dev",
        endpoint="/v1/images/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    defaults = {
        "image_size": "9:16",
        "num_images": 1,
        "guidance_scale": 4,
        "num_inference_steps": 20,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"model": "Flux.2-dev", "prompt": require_prompt(merged)}
        put(body, "image_size", choice(merged, "image_size", ASPECT_RATIOS))
        put(body, "num_images", integer(merged, "num_images", minimum=1, maximum=4))
        put(body, "guidance_scale", number(merged, "guidance_scale", minimum=0))
        put(body, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class Wan22T2VModel(GenboModel):
    config = ModelConfig(
        name="wan22T2V",
        display_name="Wan2.2-14B-T2V",
        endpoint="/v1/video/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.VIDEO,
        status_endpoint="/v1/videos/generations",
    )
    defaults = {
        "aspect_ratio": "16:9",
        "resolution": "480",
        "num_frames": 81,
        "frames_per_second": 16,
        "num_inference_steps": 8,
        "guidance_scale": 1,
        "guidance_scale_2": 1,
        "shift": 8,
        "negative_prompt": (
            "vivid color tone, overexposed, static, blurry details, subtitles, style, "
            "artwork, painting, frame, still, overall grayish, worst quality, low quality, "
            "JPEG compression artifacts, ugly, deformed, extra fingers"
        ),
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"model": "Wan2.2-14B-T2V", "prompt": require_prompt(merged)}
        put(body, "video_url", media_url(merged, "video_url"))
        put(body, "aspect_ratio", choice(merged, "aspect_ratio", ("16:9", "9:16", "1:1")))
        put(body, "resolution", choice(merged, "resolution", ("480", "720", "1080")))
        put(body, "num_frames", integer(merged, "num_frames", minimum=1))
        put(body, "frames_per_second", integer(merged, "frames_per_second", minimum=1))
        put(body, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1))
        put(body, "guidance_scale", number(merged, "guidance_scale", minimum=0))
        put(body, "guidance_scale_2", number(merged, "guidance_scale_2", minimum=0))
        put(body, "shift", number(merged, "shift", minimum=0))
        put(body, "text_prompt", text(merged, "text_prompt"))
        put(body, "negative_prompt", text(merged, "negative_prompt"))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class Flux2EditModel(GenboModel):
    config = ModelConfig(
        name="flux2Edit",
        display_name="Flux.2-edit",
        endpoint="/v1/images/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    defaults = {"image_size": "auto"}

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {
            "model": "Flux.2-edit",
            "prompt": require_prompt(merged),
            "image_url": media_url(merged, "image_url", required=True),
        }
        put(body, "image_size", choice(merged, "image_size", ASPECT_RATIOS + ("auto",)))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class Wan22AnimateMoveModel(GenboModel):
    """Transfers the motion of a driving video onto a still image."""

    config = ModelConfig(
        name="wan22AnimateMove",
        display_name="Wan2.2-14B-Animate-move",
        endpoint="/v1/video/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.VIDEO,
        status_endpoint="/v1/videos/generations",
    )
    defaults = {
        "shift": 5,
        "resolution": "720",
        "num_inference_steps": 4,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {
            "model": "Wan2.2-14B-Animate-move",
            "image_url": media_url(merged, "image_url", required=True),
            "video_url": media_url(merged, "video_url", required=True),
        }
        put(body, "shift", number(merged, "shift", minimum=0))
        put(body, "resolution", choice(merged, "resolution", ("480", "720", "1080")))
        put(body, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class SoulXPodcastSingleModel(GenboModel):
    config = ModelConfig(
        name="soulXPodcastSingle",
        display_name="SoulX-Podcast-Single",
        endpoint="/v1/audio/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.AUDIO,
    )
    defaults = {
        "choose_language": 1,
        "temperature": 0.6,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"model": "SoulX-Podcast-Single", "prompt": require_prompt(merged)}
        put(body, "choose_language", integer(merged, "choose_language", minimum=0))
        put(body, "audio_url", media_url(merged, "audio_url"))
        put(body, "temperature", number(merged, "temperature", minimum=0, maximum=1))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class IndexTTS2SingleModel(GenboModel):
    config = ModelConfig(
        name="indexTTS2Single",
        display_name="IndexTTS2 Single",
        endpoint="/v1/audio/generations",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.AUDIO,
    )
    defaults = {
        "emo_alpha": 1,
        "max_length": 1500,
        "use_random": False,
        "temperature": 0.8,
        "unload_model": False,
        "use_emo_text": True,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"model": "IndexTTS2 Single", "prompt": require_prompt(merged)}
        put(body, "prompt_2", text(merged, "prompt_2"))
        put(body, "audio_url", media_url(merged, "audio_url"))
        put(body, "emo_alpha", number(merged, "emo_alpha", minimum=0, maximum=1))
        put(body, "max_length", integer(merged, "max_length", minimum=1))
        put(body, "use_random", boolean(merged, "use_random"))
        put(body, "temperature", number(merged, "temperature", minimum=0, maximum=2))
        put(body, "unload_model", boolean(merged, "unload_model"))
        put(body, "use_emo_text", boolean(merged, "use_emo_text"))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


GENBO_MODELS: tuple[type[GenboModel], ...] = (
    ZImageTurboModel,
    Flux2DevModel,
    Flux2EditModel,
    Wan22T2VModel,
    Wan22AnimateMoveModel,
    SoulXPodcastSingleModel,
    IndexTTS2SingleModel,
)
