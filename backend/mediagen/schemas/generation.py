"""Pydantic v2 schemas for the generation API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from mediagen.services.providers.base import InterfaceMode


class GenerateRequest(BaseModel):
    """Schema for one generation invocation."""

    platform: str = Field(..., min_length=1, description="Platform id, e.g. 'fal'")
    model: str = Field(..., min_length=1, description="Model id, e.g. 'flux1Dev'")
    mode: InterfaceMode = InterfaceMode.ASYNC
    params: dict[str, Any] = Field(default_factory=dict)
    continue_on_fail: bool = Field(
        False, description="Report failures in the response body instead of an HTTP error"
    )


class ExecutionResultRead(BaseModel):
    platform: str
    model: str
    mode: str
    status: str
    outputs: list[str] = []
    job_id: str | None = None
    payload: dict[str, Any] = {}


class GenerateResponse(BaseModel):
    """Schema for the generation result (or recorded failure)."""

    ok: bool
    result: ExecutionResultRead | None = None
    error: dict[str, Any] | None = None
    input: dict[str, Any] | None = None


class ModelInfo(BaseModel):
    model: str
    display_name: str
    media_type: str
    supports_sync: bool
    supports_async: bool


class PlatformInfo(BaseModel):
    platform: str
    display_name: str
    credential_name: str
    models: list[ModelInfo]
