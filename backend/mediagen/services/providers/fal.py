"""FAL platform provider.

Queue API (async): POST {queue}/{endpoint} → request_id,
GET {queue}/{endpoint}/requests/{id}/status, then GET
{queue}/{endpoint}/requests/{id} for the result.
Sync API: POST {sync}/{endpoint} blocks until the result is ready.
Auth header: ``Authorization: Key <apiKey>``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mediagen.config import get_settings
from mediagen.services.errors import ValidationError
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
    media_urls,
    number,
    put,
    require_prompt,
    text,
)

IMAGE_SIZES = (
    "square_hd",
    "square",
    "portrait_4_3",
    "portrait_16_9",
    "landscape_4_3",
    "landscape_16_9",
    "custom",
)
ACCELERATIONS = ("none", "regular", "high")


class FalProtocol(PlatformProtocol):
    platform = PlatformId.FAL
    display_name = "FAL"
    credential_name = "falApi"
    secret_field = "apiKey"
    auth_scheme = "Key"

    def __init__(self, queue_url: str | None = None, sync_base_url: str | None = None) -> None:
        settings = get_settings()
        self.queue_url = (queue_url or settings.FAL_QUEUE_URL).rstrip("/")
        self.sync_base_url = (sync_base_url or settings.FAL_SYNC_URL).rstrip("/")

    def sync_url(self, config: ModelConfig) -> str:
        return f"{self.sync_base_url}{config.sync_endpoint or config.endpoint}"

    def submit_url(self, config: ModelConfig) -> str:
        return f"{self.queue_url}{config.endpoint}"

    def status_url(self, config: ModelConfig, job_id: str) -> str:
        return f"{self.queue_url}{config.endpoint}/requests/{job_id}/status"

    def extract_job_id(self, response: Mapping[str, Any]) -> str | None:
        request_id = response.get("request_id")
        return str(request_id) if request_id else None

    def classify(self, status: Mapping[str, Any]) -> JobStatus:
        value = status.get("status")
        if value == "COMPLETED":
            return JobStatus.SUCCEEDED
        if value == "FAILED":
            return JobStatus.FAILED
        return JobStatus.IN_PROGRESS  # IN_QUEUE / IN_PROGRESS

    def result_url(
        self, config: ModelConfig, job_id: str, status: Mapping[str, Any]
    ) -> str | None:
        if any(status.get(k) for k in ("images", "video", "audio", "output")):
            return None
        return f"{self.queue_url}{config.endpoint}/requests/{job_id}"


class FalModel(ModelBundle):
    """FAL models return the vendor payload unchanged."""

    platform = PlatformId.FAL

    def normalize_sync_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        return self._result(raw, mode=InterfaceMode.SYNC, status=_fal_status(raw))

    def normalize_async_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        return self._result(
            raw,
            mode=InterfaceMode.ASYNC,
            status=_fal_status(raw),
            job_id=raw.get("request_id"),
        )


def _fal_status(raw: Mapping[str, Any]) -> str:
    return str(raw.get("status") or "COMPLETED")


def _image_size(
    merged: Mapping[str, Any], allowed: tuple[str, ...] = IMAGE_SIZES
) -> str | dict[str, int] | None:
    size = choice(merged, "image_size", allowed)
    if size != "custom":
        return size
    return {
        "width": integer(merged, "image_size_width", minimum=1),
        "height": integer(merged, "image_size_height", minimum=1),
    }


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Flux1DevModel(FalModel):
    config = ModelConfig(
        name="flux1Dev",
        display_name="FLUX.1 [dev]",
        endpoint="/fal-ai/flux/dev",
        supports_sync=True,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    defaults = {
        "image_size": "landscape_4_3",
        "image_size_width": 1280,
        "image_size_height": 720,
        "num_inference_steps": 28,
        "guidance_scale": 3.5,
        "num_images": 1,
        "enable_safety_checker": True,
        "output_format": "jpeg",
        "acceleration": "none",
        "sync_mode": False,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"prompt": require_prompt(merged)}
        put(body, "image_size", _image_size(merged))
        put(body, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1, maximum=50))
        put(body, "seed", integer(merged, "seed"))
        put(body, "guidance_scale", number(merged, "guidance_scale", minimum=0))
        put(body, "num_images", integer(merged, "num_images", minimum=1, maximum=4))
        put(body, "enable_safety_checker", boolean(merged, "enable_safety_checker"))
        put(body, "output_format", choice(merged, "output_format", ("jpeg", "png")))
        put(body, "acceleration", choice(merged, "acceleration", ACCELERATIONS))
        put(body, "sync_mode", boolean(merged, "sync_mode"))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class ZImageTurboModel(FalModel):
    config = ModelConfig(
        name="zImageTurbo",
        display_name="Z-Image Turbo",
        endpoint="/fal-ai/z-image/turbo",
        supports_sync=True,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    defaults = {
        "image_size": "landscape_4_3",
        "image_size_width": 1024,
        "image_size_height": 768,
        "num_inference_steps": 8,
        "num_images": 1,
        "enable_safety_checker": True,
        "output_format": "png",
        "acceleration": "none",
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"prompt": require_prompt(merged)}
        put(body, "image_size", _image_size(merged))
        put(body, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1, maximum=8))
        put(body, "seed", integer(merged, "seed"))
        put(body, "num_images", integer(merged, "num_images", minimum=1, maximum=4))
        put(body, "enable_safety_checker", boolean(merged, "enable_safety_checker"))
        put(body, "output_format", choice(merged, "output_format", ("jpeg", "png", "webp")))
        put(body, "acceleration", choice(merged, "acceleration", ACCELERATIONS))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class Veo31FastModel(FalModel):
    config = ModelConfig(
        name="veo31Fast",
        display_name="Veo 3.1 Fast",
        endpoint="/fal-ai/veo3.1/fast",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.VIDEO,
    )
    defaults = {
        "aspect_ratio": "16:9",
        "duration": "8s",
        "resolution": "720p",
        "generate_audio": True,
        "auto_fix": True,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"prompt": require_prompt(merged)}
        put(body, "aspect_ratio", choice(merged, "aspect_ratio", ("16:9", "9:16")))
        put(body, "duration", choice(merged, "duration", ("4s", "6s", "8s")))
        put(body, "resolution", choice(merged, "resolution", ("720p", "1080p")))
        put(body, "negative_prompt", text(merged, "negative_prompt"))
        put(body, "generate_audio", boolean(merged, "generate_audio"))
        put(body, "auto_fix", boolean(merged, "auto_fix"))
        put(body, "seed", integer(merged, "seed"))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)




class Flux2ProEditModel(FalModel):
    config = ModelConfig(
        name="flux2ProEdit",
        display_name="FLUX.2 Pro Edit",
        endpoint="/fal-ai/flux-2-pro/edit",
        supports_sync=True,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    defaults = {
        "image_size": "auto",
        "image_size_width": 1280,
        "image_size_height": 720,
        "safety_tolerance": "2",
        "enable_safety_checker": True,
        "output_format": "jpeg",
        "sync_mode": False,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {
            "prompt": require_prompt(merged),
            "image_urls": media_urls(merged, "image_urls", required=True),
        }
        put(body, "image_size", _image_size(merged, ("auto",) + IMAGE_SIZES))
        put(body, "seed", integer(merged, "seed"))
        put(body, "safety_tolerance", choice(merged, "safety_tolerance", ("1", "2", "3", "4", "5")))
        put(body, "enable_safety_checker", boolean(merged, "enable_safety_checker"))
        put(body, "output_format", choice(merged, "output_format", ("jpeg", "png")))
        put(body, "sync_mode", boolean(merged, "sync_mode"))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


class KlingV26ProI2VModel(FalModel):
    config = ModelConfig(
        name="klingV26ProI2V",
        display_name="Kling V2.6 Pro Image-to-Video",
        endpoint="/fal-ai/kling-video/v2.6/pro/image-to-video",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.VIDEO,
    )
    defaults = {
        "duration": "5",
        "negative_prompt": "blur, distort, and low quality",
        "generate_audio": True,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {
            "prompt": require_prompt(merged),
            "image_url": media_url(merged, "image_url", required=True),
        }
        put(body, "duration", choice(merged, "duration", ("5", "10")))
        put(body, "negative_prompt", text(merged, "negative_prompt"))
        put(body, "generate_audio", boolean(merged, "generate_audio"))
        put(body, "voice_ids", _voice_ids(merged))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


def _voice_ids(merged: Mapping[str, Any]) -> list[str] | None:
    value = merged.get("voice_ids")
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError("voice_ids must be a comma-separated string or list", field="voice_ids")
    ids = [v.strip() for v in value if v.strip()]
    return ids or None


class ElevenlabsTtsV3Model(FalModel):
    # The vendor's sync route streams raw audio, so only the queue is exposed.
    config = ModelConfig(
        name="elevenlabsTtsV3",
        display_name="ElevenLabs TTS V3",
        endpoint="/fal-ai/elevenlabs/tts/eleven-v3",
        supports_sync=False,
        supports_async=True,
        media_type=MediaType.AUDIO,
    )
    defaults = {
        "voice": "Rachel",
        "stability": 0.5,
        "similarity_boost": 0.75,
        "speed": 1,
        "timestamps": False,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        body: dict[str, Any] = {"text": require_prompt(merged, "text")}
        put(body, "voice", text(merged, "voice"))
        put(body, "stability", number(merged, "stability", minimum=0, maximum=1))
        put(body, "similarity_boost", number(merged, "similarity_boost", minimum=0, maximum=1))
        put(body, "style", number(merged, "style", minimum=0, maximum=1))
        put(body, "speed", number(merged, "speed", minimum=0.7, maximum=1.2))
        put(body, "timestamps", boolean(merged, "timestamps"))
        put(body, "language_code", text(merged, "language_code"))
        return RequestDescriptor(endpoint=self.config.endpoint, body=body)


FAL_MODELS: tuple[type[FalModel], ...] = (
    Flux1DevModel,
    ZImageTurboModel,
    Flux2ProEditModel,
    Veo31FastModel,
    KlingV26ProI2VModel,
    ElevenlabsTtsV3Model,
)
