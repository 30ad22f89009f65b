"""Model catalogue API: list supported platforms and their models."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from mediagen.schemas.generation import PlatformInfo
from mediagen.services.errors import UnknownPlatformError
from mediagen.services.model_registry import PLATFORM_REGISTRY

router = APIRouter(prefix="/models")


@router.get("")
async def list_platforms() -> dict[str, Any]:
    """List every platform with its models and capability flags."""
    platforms = PLATFORM_REGISTRY.to_dict_list()
    return {
        "platforms": platforms,
        "total": sum(len(p["models"]) for p in platforms),
    }


@router.get("/{platform}", response_model=PlatformInfo)
async def list_platform_models(platform: str) -> dict[str, Any]:
    """List the models one platform offers."""
    try:
        return PLATFORM_REGISTRY.describe(platform)
    except UnknownPlatformError as e:
        raise HTTPException(status_code=404, detail=e.message)
