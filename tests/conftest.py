"""Pytest configuration helpers.

This conftest ensures ``backend`` is on ``sys.path`` so tests can import the
``mediagen`` package regardless of how pytest is invoked, and provides the
transport / credential / sleep doubles shared by the test modules.
"""
from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

BACKEND = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from mediagen.services.credentials import StaticCredentialProvider  # noqa: E402
from mediagen.services.errors import RemoteError  # noqa: E402
from mediagen.services.execution import ModelInstance  # noqa: E402
from mediagen.services.model_registry import PLATFORM_REGISTRY  # noqa: E402

FAL_KEY = "fal-key-0123456789abcdef"
GENBO_KEY = "genbo-key-0123456789abcdef"
REPLICATE_TOKEN = "r8_0123456789abcdef0123"


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    body: Any
    timeout: float | None


@dataclass
class ScriptedTransport:
    """Call-counting transport double.

    ``responses`` is consumed in order; an item that is an exception is
    raised instead of returned.
    """
    responses: list[Any] = field(default_factory=list)
    calls: list[RecordedCall] = field(default_factory=list)
    on_call: Any = None

    async def call(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        vendor_error=None,
    ) -> dict[str, Any]:
        self.calls.append(RecordedCall(method, url, dict(headers), body, timeout))
        if self.on_call is not None:
            self.on_call(len(self.calls))
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}: no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if vendor_error is not None:
            message = vendor_error(response)
            if message:
                raise RemoteError(f"API request failed: {message}", vendor_message=message)
        return response

    @property
    def posts(self) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == "POST"]

    @property
    def gets(self) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == "GET"]


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider(
        {
            "fal": {"apiKey": FAL_KEY},
            "genbo": {"apiKey": GENBO_KEY},
            "replicate": {"apiToken": REPLICATE_TOKEN},
        }
    )


@pytest.fixture
def make_instance(credentials):
    def _make(platform: str, model: str, provider=None) -> ModelInstance:
        entry = PLATFORM_REGISTRY.get(platform)
        return ModelInstance(
            bundle=entry.models.create(model),
            protocol=entry.protocol(),
            credential_provider=provider or credentials,
        )

    return _make


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    """Record ``asyncio.sleep`` delays instead of waiting."""
    recorded: list[float] = []

    async def fake_sleep(delay: float, *args, **kwargs) -> None:
        recorded.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded
