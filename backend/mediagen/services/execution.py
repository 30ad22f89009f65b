"""Execution strategies: synchronous call and submit-then-poll state machine.

Async state machine:
  SUBMITTING → POLLING → SUCCEEDED | FAILED

1. SUBMITTING: resolve credentials, build the request, POST once. No job id
   in the response is a ProtocolError and is never resubmitted.
2. POLLING: GET the status URL, sleep ``interval`` between checks. Runs until
   the vendor reports a terminal state, unless the caller sets a cancel token
   or opts into ``max_wait``.
3. SUCCEEDED: normalize the final payload.
4. FAILED: raise RemoteError with the vendor's reason.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from mediagen.config import get_settings
from mediagen.services.credentials import (
    CredentialProvider,
    fetch_credentials,
    validate_credentials,
)
from mediagen.services.errors import (
    ExecutionCancelledError,
    PollingTimeoutError,
    ProtocolError,
    RemoteError,
    TransportError,
    UnsupportedOperationError,
)
from mediagen.services.providers.base import (
    ExecutionResult,
    JobPhase,
    JobStatus,
    ModelBundle,
    PlatformProtocol,
)
from mediagen.services.transport import VendorErrorCheck

logger = logging.getLogger(__name__)

# FAL answers a result fetch with these when the status payload already is the result
_RESULT_FALLBACK_STATUS = {404, 422}


class Transport(Protocol):
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
        ...


@dataclass
class PollingPolicy:
    """Cadence and (optional) bounds for the polling loop."""
    interval: float = 2.0
    max_wait: float | None = None   # None = poll until the vendor finishes
    transport_retries: int = 0      # status checks only, never submission

    @classmethod
    def from_settings(cls) -> "PollingPolicy":
        settings = get_settings()
        return cls(
            interval=settings.POLL_INTERVAL_SECONDS,
            max_wait=settings.POLL_MAX_WAIT_SECONDS,
            transport_retries=settings.POLL_TRANSPORT_RETRIES,
        )


@dataclass
class AsyncJob:
    """Book-keeping for one in-flight asynchronous invocation."""
    phase: JobPhase = JobPhase.SUBMITTING
    job_id: str | None = None
    polls: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


class ModelInstance:
    """A model bundle bound to its platform protocol and credentials.

    One instance per invocation; the validated secret is fetched once and
    cached for the instance's lifetime.
    """

    def __init__(
        self,
        bundle: ModelBundle,
        protocol: PlatformProtocol,
        credential_provider: CredentialProvider,
    ) -> None:
        self.bundle = bundle
        self.protocol = protocol
        self.credential_provider = credential_provider
        self._secret: str | None = None

    @property
    def config(self):
        return self.bundle.get_config()

    async def ensure_credentials(self) -> str:
        if self._secret is not None:
            return self._secret
        bag = await fetch_credentials(self.credential_provider, self.protocol.platform)
        self._secret = validate_credentials(
            bag,
            platform_name=self.protocol.display_name,
            secret_field=self.protocol.secret_field,
        )
        return self._secret

    def __repr__(self) -> str:
        return f"<ModelInstance {self.protocol.platform.value}:{self.config.name}>"


# ---------------------------------------------------------------------------
# Synchronous strategy
# ---------------------------------------------------------------------------

async def execute_sync(
    instance: ModelInstance,
    params: Mapping[str, Any],
    transport: Transport,
    *,
    timeout: float | None = None,
) -> ExecutionResult:
    """Run one blocking call against the platform's sync endpoint."""
    config = instance.config
    if not config.supports_sync:
        raise UnsupportedOperationError(
            f"Model {config.display_name} does not support synchronous requests"
        )

    secret = await instance.ensure_credentials()
    descriptor = instance.bundle.build_request_params(params)
    protocol = instance.protocol

    headers = {**protocol.auth_headers(secret), **protocol.sync_headers()}
    url = protocol.sync_url(config)
    timeout = timeout or get_settings().SYNC_TIMEOUT_SECONDS

    logger.info(
        "Sync request %s:%s → %s (timeout=%.0fs)",
        protocol.platform.value, config.name, url, timeout,
    )
    raw = await transport.call(
        "POST",
        url,
        headers=headers,
        body=descriptor.body,
        timeout=timeout,
        vendor_error=protocol.vendor_error,
    )
    status = protocol.unwrap(raw)
    if protocol.classify(status) is JobStatus.FAILED:
        reason = protocol.failure_reason(status)
        logger.warning("%s sync request failed: %s", protocol.display_name, reason)
        raise RemoteError(
            f"Sync request failed: {reason}",
            vendor_message=reason,
            response_body=status,
        )
    return instance.bundle.normalize_sync_response(status)


# ---------------------------------------------------------------------------
# Asynchronous strategy
# ---------------------------------------------------------------------------

async def execute_async(
    instance: ModelInstance,
    params: Mapping[str, Any],
    transport: Transport,
    *,
    policy: PollingPolicy | None = None,
    cancel_token: asyncio.Event | None = None,
) -> ExecutionResult:
    """Submit a job, poll it to a terminal state and normalize the result."""
    config = instance.config
    if not config.supports_async:
        raise UnsupportedOperationError(
            f"Model {config.display_name} does not support asynchronous requests"
        )

    policy = policy or PollingPolicy.from_settings()
    protocol = instance.protocol
    job = AsyncJob()

    # --- SUBMITTING ---
    _check_cancelled(cancel_token, job)
    secret = await instance.ensure_credentials()
    descriptor = instance.bundle.build_request_params(params)
    headers = protocol.auth_headers(secret)

    submit_response = await transport.call(
        "POST",
        protocol.submit_url(config),
        headers=headers,
        body=descriptor.body,
        vendor_error=protocol.vendor_error,
    )
    job.job_id = protocol.extract_job_id(submit_response)
    if not job.job_id:
        raise ProtocolError(
            f"Failed to get a job id from {protocol.display_name} async submission. "
            f"Response: {submit_response}"
        )

    logger.info(
        "%s job submitted: %s (model=%s)", protocol.display_name, job.job_id, config.name,
    )

    # --- POLLING ---
    job.phase = JobPhase.POLLING
    status_url = protocol.status_url(config, job.job_id)

    while True:
        _check_cancelled(cancel_token, job)
        status = protocol.unwrap(
            await _poll_once(
                transport, status_url, headers, protocol, policy, job, cancel_token
            )
        )
        job.polls += 1
        outcome = protocol.classify(status)

        if outcome is JobStatus.SUCCEEDED:
            job.phase = JobPhase.SUCCEEDED
            logger.info(
                "%s job %s succeeded after %d polls (%.1fs)",
                protocol.display_name, job.job_id, job.polls, job.elapsed,
            )
            final = await _fetch_result(transport, instance, job.job_id, status, headers)
            result = instance.bundle.normalize_async_response(final)
            if result.job_id is None:
                result = dataclasses.replace(result, job_id=job.job_id)
            return result

        if outcome is JobStatus.FAILED:
            job.phase = JobPhase.FAILED
            reason = protocol.failure_reason(status)
            logger.warning(
                "%s job %s failed: %s", protocol.display_name, job.job_id, reason,
            )
            raise RemoteError(
                f"Async request failed: {reason}",
                vendor_message=reason,
                response_body=status,
            )

        logger.debug(
            "%s job %s: in progress (poll %d)", protocol.display_name, job.job_id, job.polls,
        )

        _check_deadline(protocol, policy, job, policy.interval)
        await _pause(policy.interval, cancel_token)


async def _poll_once(
    transport: Transport,
    url: str,
    headers: Mapping[str, str],
    protocol: PlatformProtocol,
    policy: PollingPolicy,
    job: AsyncJob,
    cancel_token: asyncio.Event | None,
) -> dict[str, Any]:
    attempt = 0
    while True:
        try:
            return await transport.call(
                "GET", url, headers=headers, vendor_error=protocol.vendor_error
            )
        except TransportError:
            if attempt >= policy.transport_retries:
                raise
            attempt += 1
            backoff = policy.interval * (2 ** attempt)
            _check_deadline(protocol, policy, job, backoff)
            logger.warning(
                "%s job %s: status check failed, retry %d/%d in %.0fs",
                protocol.display_name, job.job_id, attempt, policy.transport_retries, backoff,
            )
            await _pause(backoff, cancel_token)
            _check_cancelled(cancel_token, job)


async def _fetch_result(
    transport: Transport,
    instance: ModelInstance,
    job_id: str,
    status: dict[str, Any],
    headers: Mapping[str, str],
) -> dict[str, Any]:
    protocol = instance.protocol
    url = protocol.result_url(instance.config, job_id, status)
    if url is None:
        return status
    try:
        raw = await transport.call("GET", url, headers=headers, vendor_error=protocol.vendor_error)
    except RemoteError as e:
        if e.status_code in _RESULT_FALLBACK_STATUS:
            logger.info(
                "%s job %s: result fetch returned %d, using status payload",
                protocol.display_name, job_id, e.status_code,
            )
            return status
        raise
    return protocol.unwrap(raw)


def _check_deadline(
    protocol: PlatformProtocol, policy: PollingPolicy, job: AsyncJob, pause: float
) -> None:
    """Raise before a pause that would take the job past ``max_wait``."""
    if policy.max_wait is None or job.elapsed + pause <= policy.max_wait:
        return
    logger.warning(
        "%s job %s: giving up in phase %s after %d polls (%.1fs)",
        protocol.display_name, job.job_id, job.phase.value, job.polls, job.elapsed,
    )
    raise PollingTimeoutError(
        f"{protocol.display_name} job {job.job_id} did not finish within "
        f"{policy.max_wait:.0f}s",
        job_id=job.job_id,
        waited_seconds=job.elapsed,
        phase=job.phase.value,
    )


def _check_cancelled(cancel_token: asyncio.Event | None, job: AsyncJob) -> None:
    if cancel_token is not None and cancel_token.is_set():
        raise ExecutionCancelledError(
            f"Job {job.job_id} cancelled in phase {job.phase.value} after {job.polls} polls",
            job_id=job.job_id,
            phase=job.phase.value,
        )


async def _pause(seconds: float, cancel_token: asyncio.Event | None) -> None:
    """Sleep between polls, waking early if the cancel token is set."""
    if cancel_token is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel_token.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
