"""Replicate platform provider.

Predictions API: POST /v1/predictions → prediction ``id``, then
GET /v1/predictions/{id} until ``succeeded`` / ``failed`` / ``canceled``.
Sync calls use the same endpoint with ``Prefer: wait``.
"""

from __future__ import annotations

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
    choice,
    integer,
    number,
    put,
    require_prompt,
)


class ReplicateProtocol(PlatformProtocol):
    platform = PlatformId.REPLICATE
    display_name = "Replicate"
    credential_name = "replicateApi"
    secret_field = "apiToken"
    auth_scheme = "Bearer"

    def __init__(self, base_url: str | None = None) -> None:
        self.base_url = (base_url or get_settings().REPLICATE_BASE_URL).rstrip("/")

    def sync_headers(self) -> dict[str, str]:
        return {"Prefer": "wait"}

    def sync_url(self, config: ModelConfig) -> str:
        return f"{self.base_url}{config.sync_endpoint or config.endpoint}"

    def submit_url(self, config: ModelConfig) -> str:
        return f"{self.base_url}{config.endpoint}"

    def status_url(self, config: ModelConfig, job_id: str) -> str:
        return f"{self.base_url}/v1/predictions/{job_id}"

    def extract_job_id(self, response: Mapping[str, Any]) -> str | None:
        prediction_id = response.get("id")
        return str(prediction_id) if prediction_id else None

    def classify(self, status: Mapping[str, Any]) -> JobStatus:
        value = status.get("status")
        if value == "succeeded":
            return JobStatus.SUCCEEDED
        if value in ("failed", "canceled"):
            return JobStatus.FAILED
        return JobStatus.IN_PROGRESS  # starting / processing


class ReplicateModel(ModelBundle):
    """Replicate predictions share one response shape for sync and async."""

    platform = PlatformId.REPLICATE

    def normalize_sync_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        payload: dict[str, Any] = {
            "prediction_id": raw.get("id"),
            "status": raw.get("status"),
            "output": raw.get("output"),
        }
        for key in ("error", "metrics", "urls"):
            if raw.get(key):
                payload[key] = raw[key]

        prediction_id = raw.get("id")
        return self._result(
            raw,
            mode=InterfaceMode.SYNC,
            status=str(raw.get("status") or "unknown"),
            payload=payload,
            job_id=str(prediction_id) if prediction_id else None,
        )


class ZImageTurboModel(ReplicateModel):
    config = ModelConfig(
        name="zImageTurbo",
        display_name="Z-image-turbo",
        endpoint="/v1/predictions",
        supports_sync=True,
        supports_async=True,
        media_type=MediaType.IMAGE,
    )
    version = "prunaai/z-image-turbo"
    defaults = {
        "width": 1024,
        "height": 768,
        "output_format": "jpg",
        "guidance_scale": 0,
        "output_quality": 80,
        "num_inference_steps": 8,
    }

    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        merged = self._merged(params)
        model_input: dict[str, Any] = {"prompt": require_prompt(merged)}
        put(model_input, "width", integer(merged, "width", minimum=64, maximum=2048))
        put(model_input, "height", integer(merged, "height", minimum=64, maximum=2048))
        put(model_input, "output_format", choice(merged, "output_format", ("jpg", "png", "webp")))
        put(model_input, "guidance_scale", number(merged, "guidance_scale", minimum=0))
        put(model_input, "output_quality", integer(merged, "output_quality", minimum=0, maximum=100))
        put(model_input, "num_inference_steps", integer(merged, "num_inference_steps", minimum=1, maximum=50))
        return RequestDescriptor(
            endpoint=self.config.endpoint,
            body={"version": self.version, "input": model_input},
        )


REPLICATE_MODELS: tuple[type[ReplicateModel], ...] = (ZImageTurboModel,)
