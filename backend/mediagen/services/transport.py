"""HTTP transport: one authenticated round trip per call.

Maps failures into:
- a response arrived but is non-2xx or carries a vendor error → RemoteError
- a 2xx response whose body is not a JSON object → ProtocolError
- no response at all (connect error, timeout, unusable URL) → TransportError

No retries here; retry policy belongs to the polling loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from mediagen.config import get_settings
from mediagen.services.errors import (
    ProtocolError,
    RemoteError,
    RequestDiagnostics,
    TransportError,
)

logger = logging.getLogger(__name__)

VendorErrorCheck = Callable[[Mapping[str, Any]], "str | None"]


class HttpTransport:
    """Thin async wrapper around ``httpx.AsyncClient``.

    Pass ``http_client`` to share a pooled client (the app does this in its
    lifespan); otherwise a client is opened per call.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        default_timeout: float | None = None,
    ) -> None:
        self._client = http_client
        self.default_timeout = default_timeout or get_settings().REQUEST_TIMEOUT_SECONDS

    async def call(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        vendor_error: VendorErrorCheck | None = None,
    ) -> dict[str, Any]:
        """Perform one HTTP call and return the decoded JSON body."""
        timeout = timeout or self.default_timeout
        diagnostics = RequestDiagnostics.capture(method, url, dict(headers), body)

        client = self._client or httpx.AsyncClient(timeout=timeout)
        own_client = self._client is None

        try:
            response = await client.request(
                method.upper(),
                url,
                headers=dict(headers),
                json=body,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out after %.0fs", method.upper(), url, timeout)
            raise TransportError(
                f"API request timed out after {timeout:.0f}s",
                request=diagnostics,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # connect/read failures, unsupported scheme, malformed URL
            logger.warning("%s %s failed: %s", method.upper(), url, e)
            raise TransportError(
                f"API request failed: {e or type(e).__name__}",
                request=diagnostics,
            ) from e
        finally:
            if own_client:
                await client.aclose()

        data = _decode(response)

        if not response.is_success:
            message = _error_message(data) or response.reason_phrase or "Unknown error"
            logger.error(
                "%s %s returned HTTP %d: %s", method.upper(), url, response.status_code, message
            )
            raise RemoteError(
                f"API request failed: {message}",
                status_code=response.status_code,
                vendor_message=message,
                request=diagnostics,
                response_body=data,
            )

        if not isinstance(data, dict):
            logger.error("%s %s returned a non-JSON-object body", method.upper(), url)
            raise ProtocolError(
                "API returned a non-JSON-object body",
                status_code=response.status_code,
                request=diagnostics,
                response_body=data,
            )

        if vendor_error is not None:
            message = vendor_error(data)
            if message:
                logger.error("%s %s reported an error: %s", method.upper(), url, message)
                raise RemoteError(
                    f"API request failed: {message}",
                    status_code=response.status_code,
                    vendor_message=message,
                    request=diagnostics,
                    response_body=data,
                )

        return data


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(data: Any) -> str | None:
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            value = data.get(key)
            if value:
                if isinstance(value, dict):
                    return str(value.get("message") or value)
                return str(value)
        return None
    if isinstance(data, str) and data.strip():
        return data.strip()[:500]
    return None
