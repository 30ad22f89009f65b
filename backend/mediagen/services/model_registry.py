"""Platform and model registry.

Every supported (platform, model) pair is declared here in one place.
A new platform is a new ``PlatformProtocol`` + model bundles + one
``register`` call below.

Usage:
    from mediagen.services.model_registry import PLATFORM_REGISTRY
    entry = PLATFORM_REGISTRY.get("replicate")
    bundle = entry.models.create("zImageTurbo")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from mediagen.services.errors import UnknownModelError, UnknownPlatformError
from mediagen.services.providers.base import ModelBundle, PlatformId, PlatformProtocol
from mediagen.services.providers.fal import FAL_MODELS, FalProtocol
from mediagen.services.providers.genbo import GENBO_MODELS, GenboProtocol
from mediagen.services.providers.replicate import REPLICATE_MODELS, ReplicateProtocol

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Models offered by one platform, keyed by model id."""

    def __init__(self, platform: PlatformId, models: Iterable[type[ModelBundle]] = ()) -> None:
        self.platform = platform
        self._models: dict[str, type[ModelBundle]] = {}
        for model in models:
            self.register(model)

    def register(self, model: type[ModelBundle]) -> None:
        if model.platform is not self.platform:
            raise ValueError(
                f"{model.__name__} belongs to {model.platform.value}, not {self.platform.value}"
            )
        self._models[model.config.name] = model

    def get(self, model_id: str) -> type[ModelBundle]:
        try:
            return self._models[model_id]
        except KeyError:
            raise UnknownModelError(
                f"Unknown model '{model_id}' for platform {self.platform.value}. "
                f"Available: {', '.join(self._models) or 'none'}",
                field="model",
            ) from None

    def create(self, model_id: str) -> ModelBundle:
        """Fresh bundle instance; bundles are never shared across invocations."""
        return self.get(model_id)()

    def list_models(self) -> list[str]:
        return list(self._models)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def to_dict_list(self) -> list[dict[str, Any]]:
        return [
            {
                "model": cfg.name,
                "display_name": cfg.display_name,
                "media_type": cfg.media_type.value,
                "supports_sync": cfg.supports_sync,
                "supports_async": cfg.supports_async,
            }
            for cfg in (model.config for model in self._models.values())
        ]


@dataclass(frozen=True)
class PlatformEntry:
    """One platform: its wire protocol plus the models it serves."""
    display_name: str
    credential_name: str
    protocol: Callable[[], PlatformProtocol]
    models: ModelRegistry


class PlatformRegistry:
    """In-memory registry of all supported platforms."""

    def __init__(self) -> None:
        self._platforms: dict[PlatformId, PlatformEntry] = {}

    def register(
        self,
        protocol: type[PlatformProtocol],
        models: Iterable[type[ModelBundle]],
    ) -> PlatformEntry:
        entry = PlatformEntry(
            display_name=protocol.display_name,
            credential_name=protocol.credential_name,
            protocol=protocol,
            models=ModelRegistry(protocol.platform, models),
        )
        self._platforms[protocol.platform] = entry
        return entry

    def get(self, platform: PlatformId | str) -> PlatformEntry:
        try:
            return self._platforms[PlatformId(platform)]
        except (KeyError, ValueError):
            raise UnknownPlatformError(
                f"Unknown platform '{_raw(platform)}'. "
                f"Available: {', '.join(p.value for p in self._platforms)}",
                field="platform",
            ) from None

    def list_platforms(self) -> list[PlatformId]:
        return list(self._platforms)

    def to_dict_list(self) -> list[dict[str, Any]]:
        return [self.describe(platform) for platform in self._platforms]

    def describe(self, platform: PlatformId | str) -> dict[str, Any]:
        entry = self.get(platform)
        return {
            "platform": PlatformId(platform).value,
            "display_name": entry.display_name,
            "credential_name": entry.credential_name,
            "models": entry.models.to_dict_list(),
        }


def _raw(platform: PlatformId | str) -> str:
    return platform.value if isinstance(platform, PlatformId) else str(platform)


# ---------------------------------------------------------------------------
# Build the global registry
# ---------------------------------------------------------------------------

PLATFORM_REGISTRY = PlatformRegistry()

PLATFORM_REGISTRY.register(FalProtocol, FAL_MODELS)
PLATFORM_REGISTRY.register(GenboProtocol, GENBO_MODELS)
PLATFORM_REGISTRY.register(ReplicateProtocol, REPLICATE_MODELS)


logger.debug(
    "Platform registry initialized: %d models across %d platforms",
    sum(len(entry.models) for entry in PLATFORM_REGISTRY._platforms.values()),
    len(PLATFORM_REGISTRY._platforms),
)
