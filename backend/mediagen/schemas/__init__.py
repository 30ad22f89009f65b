"""Pydantic v2 schemas package."""

from mediagen.schemas.generation import (
    GenerateRequest,
    GenerateResponse,
    ModelInfo,
    PlatformInfo,
)

__all__ = [
    "GenerateRequest",
    "GenerateResponse",
    "ModelInfo",
    "PlatformInfo",
]
