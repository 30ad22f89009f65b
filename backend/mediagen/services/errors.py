"""Error taxonomy for model execution.

Every failure an invocation can surface derives from ``MediaGenError``.
Local errors (bad input, bad credentials, unsupported mode) are raised
before any network call. Remote and transport errors carry the outbound
request so the failure can be acted on without re-running a costly job.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

_SECRET_HEADERS = {"authorization", "x-api-key"}


def mask_secret(value: str) -> str:
    """Mask a secret for safe logging: keep the scheme plus first/last 4 chars."""
    scheme, _, token = value.rpartition(" ")
    if len(token) <= 12:
        masked = "***"
    else:
        masked = f"{token[:4]}...{token[-4:]}"
    return f"{scheme} {masked}" if scheme else masked


@dataclass(frozen=True)
class RequestDiagnostics:
    """Outbound request snapshot attached to remote/transport failures."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @classmethod
    def capture(
        cls,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> "RequestDiagnostics":
        safe_headers = {
            name: mask_secret(value) if name.lower() in _SECRET_HEADERS else value
            for name, value in (headers or {}).items()
        }
        return cls(method=method.upper(), url=url, headers=safe_headers, body=body)

    def describe(self) -> str:
        body = json.dumps(self.body, indent=2, ensure_ascii=False) if self.body is not None else "(empty)"
        return (
            f"Method: {self.method}\n"
            f"URL: {self.url}\n"
            f"Headers: {json.dumps(self.headers, indent=2)}\n"
            f"Body: {body}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "body": self.body,
        }


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MediaGenError(Exception):
    """Base class for all model execution failures."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "message": self.message}


class ValidationError(MediaGenError):
    """Caller input is missing or outside its declared domain."""

    kind = "validation_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class UnknownPlatformError(ValidationError):
    kind = "unknown_platform"


class UnknownModelError(ValidationError):
    kind = "unknown_model"


class CredentialError(MediaGenError):
    """Credential bag is missing or malformed."""

    kind = "credential_error"


class UnsupportedOperationError(MediaGenError):
    """Interface mode is not supported by the chosen model."""

    kind = "unsupported_operation"


class ProtocolError(MediaGenError):
    """Vendor response violates the vendor's own contract."""

    kind = "protocol_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        request: RequestDiagnostics | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.request = request
        self.response_body = response_body

    def __str__(self) -> str:
        if self.request is None:
            return self.message
        status = f"\n\nResponse Status: {self.status_code}" if self.status_code is not None else ""
        return f"{self.message}\n\nRequest Details:\n{self.request.describe()}{status}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.request is not None:
            data["request"] = self.request.to_dict()
        return data


class RemoteError(MediaGenError):
    """Vendor explicitly reported a failure (non-2xx or error field)."""

    kind = "remote_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        vendor_message: str | None = None,
        request: RequestDiagnostics | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.vendor_message = vendor_message
        self.request = request
        self.response_body = response_body

    def __str__(self) -> str:
        if self.request is None:
            return self.message
        status = f"\n\nResponse Status: {self.status_code}" if self.status_code is not None else ""
        return f"{self.message}\n\nRequest Details:\n{self.request.describe()}{status}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["vendor_message"] = self.vendor_message
        if self.request is not None:
            data["request"] = self.request.to_dict()
        return data


class TransportError(MediaGenError):
    """No response was received (network failure or timeout)."""

    kind = "transport_error"

    def __init__(self, message: str, *, request: RequestDiagnostics | None = None) -> None:
        super().__init__(message)
        self.request = request

    def __str__(self) -> str:
        if self.request is None:
            return self.message
        return f"{self.message}\n\nRequest Details:\n{self.request.describe()}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.request is not None:
            data["request"] = self.request.to_dict()
        return data


class PollingTimeoutError(MediaGenError):
    """Opt-in maximum wait elapsed before the job reached a terminal state."""

    kind = "polling_timeout"

    def __init__(
        self,
        message: str,
        *,
        job_id: str,
        waited_seconds: float,
        phase: str | None = None,
    ) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.waited_seconds = waited_seconds
        self.phase = phase

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(job_id=self.job_id, waited_seconds=self.waited_seconds, phase=self.phase)
        return data


class ExecutionCancelledError(MediaGenError):
    """The caller's cancellation token was set while the job was in flight."""

    kind = "cancelled"

    def __init__(
        self, message: str, *, job_id: str | None = None, phase: str | None = None
    ) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.phase = phase

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(job_id=self.job_id, phase=self.phase)
        return data
