"""Invocation entry point: resolve platform → model → instance, then execute."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from mediagen.config import Settings, get_settings
from mediagen.services.credentials import CredentialProvider, SettingsCredentialProvider
from mediagen.services.errors import MediaGenError, ValidationError
from mediagen.services.execution import (
    ModelInstance,
    PollingPolicy,
    Transport,
    execute_async,
    execute_sync,
)
from mediagen.services.model_registry import PLATFORM_REGISTRY, PlatformRegistry
from mediagen.services.providers.base import ExecutionResult, InterfaceMode
from mediagen.services.transport import HttpTransport

logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    platform: str
    model: str
    mode: InterfaceMode | str = InterfaceMode.ASYNC
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class InvocationOutcome:
    """Partial-failure record: either a result or an error plus the original input."""
    result: ExecutionResult | None = None
    error: MediaGenError | None = None
    item: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
            "input": self.item,
        }


class GenerationService:
    """Runs one model invocation per call; holds no per-invocation state."""

    def __init__(
        self,
        credential_provider: CredentialProvider | None = None,
        transport: Transport | None = None,
        *,
        settings: Settings | None = None,
        registry: PlatformRegistry | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.credential_provider = credential_provider or SettingsCredentialProvider(self.settings)
        self.transport = transport or HttpTransport(
            default_timeout=self.settings.REQUEST_TIMEOUT_SECONDS
        )
        self.registry = registry or PLATFORM_REGISTRY

    def instantiate(self, platform: str, model: str) -> ModelInstance:
        entry = self.registry.get(platform)
        return ModelInstance(
            bundle=entry.models.create(model),
            protocol=entry.protocol(),
            credential_provider=self.credential_provider,
        )

    async def generate(
        self,
        request: GenerationRequest,
        cancel_token: asyncio.Event | None = None,
    ) -> ExecutionResult:
        mode = _mode(request.mode)
        instance = self.instantiate(request.platform, request.model)

        logger.info("Generating with %r (mode=%s)", instance, mode.value)
        if mode is InterfaceMode.SYNC:
            return await execute_sync(
                instance,
                request.params,
                self.transport,
                timeout=self.settings.SYNC_TIMEOUT_SECONDS,
            )
        return await execute_async(
            instance,
            request.params,
            self.transport,
            policy=PollingPolicy(
                interval=self.settings.POLL_INTERVAL_SECONDS,
                max_wait=self.settings.POLL_MAX_WAIT_SECONDS,
                transport_retries=self.settings.POLL_TRANSPORT_RETRIES,
            ),
            cancel_token=cancel_token,
        )

    async def generate_or_record(
        self,
        request: GenerationRequest,
        item: Any = None,
        cancel_token: asyncio.Event | None = None,
    ) -> InvocationOutcome:
        """Like ``generate`` but reports failures instead of raising them.

        Lets a batch caller record the error against one item and continue.
        """
        try:
            result = await self.generate(request, cancel_token)
        except MediaGenError as e:
            logger.warning(
                "Generation failed for %s:%s, continuing: %s",
                request.platform, request.model, e.message,
            )
            return InvocationOutcome(error=e, item=item)
        return InvocationOutcome(result=result, item=item)


def _mode(value: InterfaceMode | str) -> InterfaceMode:
    try:
        return InterfaceMode(value)
    except ValueError:
        raise ValidationError(
            f"Invalid interface mode '{value}', expected 'sync' or 'async'",
            field="mode",
        ) from None
