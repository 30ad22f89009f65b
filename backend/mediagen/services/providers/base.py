"""Model bundle contract shared by every platform.

A platform contributes two things:

* a ``PlatformProtocol`` describing its wire quirks (auth scheme, URLs,
  job handle extraction, status classification);
* one ``ModelBundle`` subclass per model that builds the request payload
  and normalizes the vendor response.

The orchestration in ``mediagen.services.execution`` is fixed and only talks to
these two interfaces.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urlsplit

from mediagen.services.errors import ValidationError


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

class PlatformId(str, enum.Enum):
    FAL = "fal"
    GENBO = "genbo"
    REPLICATE = "replicate"


class InterfaceMode(str, enum.Enum):
    SYNC = "sync"
    ASYNC = "async"


class MediaType(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class JobStatus(str, enum.Enum):
    """Classification of one vendor-reported status."""
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobPhase(str, enum.Enum):
    """States of the asynchronous execution state machine."""
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelConfig:
    """Static descriptor for one model."""
    name: str
    display_name: str
    endpoint: str                       # relative path
    supports_sync: bool
    supports_async: bool
    media_type: MediaType = MediaType.IMAGE
    sync_endpoint: str | None = None    # when the sync path differs
    status_endpoint: str | None = None  # when the status path prefix differs


@dataclass(frozen=True)
class RequestDescriptor:
    """Outbound payload for exactly one invocation."""
    endpoint: str
    body: dict[str, Any]


@dataclass
class ExecutionResult:
    """Uniform, vendor-independent result of one invocation."""
    platform: PlatformId
    model: str
    mode: InterfaceMode
    status: str
    outputs: list[str] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    job_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform.value,
            "model": self.model,
            "mode": self.mode.value,
            "status": self.status,
            "outputs": list(self.outputs),
            "job_id": self.job_id,
            "payload": self.payload,
        }


# ---------------------------------------------------------------------------
# Platform protocol
# ---------------------------------------------------------------------------

class PlatformProtocol(ABC):
    """Wire-level behaviour of one vendor API."""

    platform: ClassVar[PlatformId]
    display_name: ClassVar[str]
    credential_name: ClassVar[str]
    secret_field: ClassVar[str]
    auth_scheme: ClassVar[str] = "Bearer"

    def auth_headers(self, secret: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"{self.auth_scheme} {secret}",
        }

    def sync_headers(self) -> dict[str, str]:
        """Extra headers for synchronous calls (e.g. a wait-for-completion hint)."""
        return {}

    @abstractmethod
    def sync_url(self, config: ModelConfig) -> str:
        ...

    @abstractmethod
    def submit_url(self, config: ModelConfig) -> str:
        ...

    @abstractmethod
    def status_url(self, config: ModelConfig, job_id: str) -> str:
        ...

    @abstractmethod
    def extract_job_id(self, response: Mapping[str, Any]) -> str | None:
        """Return the job handle from a submission response, if present."""

    @abstractmethod
    def classify(self, status: Mapping[str, Any]) -> JobStatus:
        ...

    def unwrap(self, response: Mapping[str, Any]) -> dict[str, Any]:
        """Strip a vendor envelope from a status payload."""
        return dict(response)

    failure_keys: ClassVar[tuple[str, ...]] = (
        "error", "fail_reason", "message", "reason", "error_message",
    )

    def failure_reason(self, status: Mapping[str, Any]) -> str:
        for key in self.failure_keys:
            value = status.get(key)
            if value:
                if isinstance(value, Mapping):
                    return str(value.get("message") or value)
                return str(value)
        return "Unknown error"

    def result_url(
        self, config: ModelConfig, job_id: str, status: Mapping[str, Any]
    ) -> str | None:
        """URL to fetch the final payload from, or None when ``status`` carries it."""
        return None

    def vendor_error(self, response: Mapping[str, Any]) -> str | None:
        """Error message embedded in a 2xx body, if the vendor uses one."""
        return None


# ---------------------------------------------------------------------------
# Model bundle
# ---------------------------------------------------------------------------

class ModelBundle(ABC):
    """Request builder and response normalizer for one platform x model."""

    platform: ClassVar[PlatformId]
    config: ClassVar[ModelConfig]
    defaults: ClassVar[Mapping[str, Any]] = {}

    def get_config(self) -> ModelConfig:
        return self.config

    @abstractmethod
    def build_request_params(self, params: Mapping[str, Any]) -> RequestDescriptor:
        """Turn caller parameters into the outbound payload.

        Raises:
            ValidationError: a required field is missing or out of domain.
        """

    @abstractmethod
    def normalize_sync_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        ...

    def normalize_async_response(self, raw: Mapping[str, Any]) -> ExecutionResult:
        result = self.normalize_sync_response(raw)
        result.mode = InterfaceMode.ASYNC
        return result

    # -- helpers for subclasses ------------------------------------------------

    def _merged(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Caller values over declared defaults; ``None`` means "use default"."""
        merged = dict(self.defaults)
        for key, value in params.items():
            if value is not None:
                merged[key] = value
        return merged

    def _result(
        self,
        raw: Mapping[str, Any],
        *,
        mode: InterfaceMode,
        status: str | None = None,
        payload: dict[str, Any] | None = None,
        job_id: str | None = None,
    ) -> ExecutionResult:
        payload = dict(raw) if payload is None else payload
        return ExecutionResult(
            platform=self.platform,
            model=self.config.name,
            mode=mode,
            status=status or str(raw.get("status") or "succeeded"),
            outputs=collect_output_urls(raw),
            payload=payload,
            job_id=job_id,
        )


# ---------------------------------------------------------------------------
# Parameter validation helpers
# ---------------------------------------------------------------------------

def put(body: dict[str, Any], key: str, value: Any) -> None:
    """Set ``key`` only when a value was resolved."""
    if value is not None:
        body[key] = value


def require_prompt(params: Mapping[str, Any], key: str = "prompt") -> str:
    prompt = params.get(key)
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required", field=key)
    return prompt


def choice(params: Mapping[str, Any], key: str, allowed: Iterable[str]) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    allowed = tuple(allowed)
    if value not in allowed:
        raise ValidationError(
            f"Invalid {key} '{value}', expected one of: {', '.join(allowed)}",
            field=key,
        )
    return value


def integer(
    params: Mapping[str, Any],
    key: str,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", field=key)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer, got {value!r}", field=key) from None
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{key} must be an integer, got {value!r}", field=key)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", field=key)
    if maximum is not None and number > maximum:
        raise ValidationError(f"{key} must be <= {maximum}", field=key)
    return number


def number(
    params: Mapping[str, Any],
    key: str,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float | int | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number, got {value!r}", field=key)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", field=key)
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}", field=key)
    return value


def boolean(params: Mapping[str, Any], key: str) -> bool | None:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean", field=key)
    return value


def text(params: Mapping[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", field=key)
    return value


def media_url(params: Mapping[str, Any], key: str, *, required: bool = False) -> str | None:
    """An input image/video/audio reference: http(s) URL or base64 data URI."""
    value = params.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{key} is required", field=key)
        return None
    if not isinstance(value, str) or not _is_media_url(value.strip()):
        raise ValidationError(
            f"{key} must be an http(s) URL or data URI, got {value!r}", field=key
        )
    return value.strip()


def media_urls(
    params: Mapping[str, Any], key: str, *, required: bool = False
) -> list[str] | None:
    """A list of input references; a single string is accepted as one item."""
    value = params.get(key)
    if isinstance(value, str):
        value = [value]
    if value is None:
        value = []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{key} must be a list of URLs", field=key)

    urls: list[str] = []
    for item in value:
        if isinstance(item, Mapping):
            item = item.get("url") or item.get("value")
        if item is None or (isinstance(item, str) and not item.strip()):
            continue
        if not isinstance(item, str) or not _is_media_url(item.strip()):
            raise ValidationError(
                f"{key} must contain http(s) URLs or data URIs, got {item!r}", field=key
            )
        urls.append(item.strip())

    if not urls:
        if required:
            raise ValidationError(f"At least one {key} entry is required", field=key)
        return None
    return urls


def _is_media_url(value: str) -> bool:
    if value.startswith("data:"):
        return "," in value
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


# ---------------------------------------------------------------------------
# Output discovery
# ---------------------------------------------------------------------------

_URL_LIST_KEYS = ("images", "urls", "image_urls", "videos")
_URL_ITEM_KEYS = ("image", "video", "audio", "audio_file")


def collect_output_urls(raw: Mapping[str, Any]) -> list[str]:
    """Find output URLs in a vendor payload, tolerating any missing field."""
    urls: list[str] = []

    def add(value: Any) -> None:
        if isinstance(value, str) and value:
            urls.append(value)
        elif isinstance(value, Mapping):
            add(value.get("url"))
        elif isinstance(value, list):
            for item in value:
                add(item)

    add(raw.get("output"))
    for key in _URL_LIST_KEYS:
        add(raw.get(key))
    for key in _URL_ITEM_KEYS:
        add(raw.get(key))
    add(raw.get("url"))

    task_result = raw.get("task_result")
    if isinstance(task_result, Mapping):
        for key in ("url", "urls", "image_url", "image_urls", "video_url", "audio_url"):
            add(task_result.get(key))

    result = raw.get("result")
    if isinstance(result, (str, list, Mapping)):
        add(result)

    unique: list[str] = []
    for url in urls:
        if url not in unique:
            unique.append(url)
    return unique
