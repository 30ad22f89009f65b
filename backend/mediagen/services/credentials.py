"""Credential providers and validation.

The credential store itself lives outside this package; all execution needs
is a key/value bag per platform. Validation always runs before any network
call.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Protocol, Union

from mediagen.config import Settings, get_settings
from mediagen.services.errors import CredentialError
from mediagen.services.providers.base import PlatformId

logger = logging.getLogger(__name__)

CredentialBag = Mapping[str, Any]


class CredentialProvider(Protocol):
    def get_credentials(
        self, platform: PlatformId
    ) -> Union[CredentialBag, None, Awaitable[CredentialBag | None]]:
        ...


class StaticCredentialProvider:
    """In-memory credentials keyed by platform id."""

    def __init__(self, credentials: Mapping[PlatformId | str, Any]) -> None:
        self._credentials = {PlatformId(k): v for k, v in credentials.items()}

    def get_credentials(self, platform: PlatformId) -> Any:
        return self._credentials.get(platform)


class SettingsCredentialProvider:
    """Read platform secrets from application settings (env / .env)."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def get_credentials(self, platform: PlatformId) -> CredentialBag | None:
        if platform is PlatformId.FAL:
            secret = self.settings.FAL_API_KEY
            return {"apiKey": secret} if secret else None
        if platform is PlatformId.GENBO:
            secret = self.settings.GENBO_API_KEY
            return {"apiKey": secret} if secret else None
        if platform is PlatformId.REPLICATE:
            secret = self.settings.REPLICATE_API_TOKEN
            return {"apiToken": secret} if secret else None
        return None


async def fetch_credentials(provider: CredentialProvider, platform: PlatformId) -> Any:
    """Call the provider, awaiting the result when it is pending."""
    result = provider.get_credentials(platform)
    if inspect.isawaitable(result):
        result = await result
    return result


def validate_credentials(bag: Any, *, platform_name: str, secret_field: str) -> str:
    """Return the trimmed secret from ``bag`` or raise CredentialError."""
    if bag is None:
        raise CredentialError(
            f"{platform_name} API credentials not found. "
            f"Configure the {platform_name} credential before running this model."
        )
    if not isinstance(bag, Mapping):
        raise CredentialError(
            f"Invalid {platform_name} API credentials format. "
            f"Expected a key/value mapping, got {type(bag).__name__}."
        )
    if len(bag) == 0:
        raise CredentialError(
            f"{platform_name} API credentials are empty. "
            "The credential was selected but contains no data."
        )

    secret = bag.get(secret_field)
    if secret is None or secret == "":
        available = ", ".join(str(k) for k in bag.keys()) or "none"
        raise CredentialError(
            f"{platform_name} '{secret_field}' is required. "
            f"Found keys in credentials: {available}."
        )
    if isinstance(secret, bool) or not isinstance(secret, (str, int)):
        raise CredentialError(
            f"Invalid {platform_name} '{secret_field}' type. "
            f"Expected string or number, got {type(secret).__name__}."
        )

    secret = str(secret).strip()
    if not secret:
        raise CredentialError(
            f"{platform_name} '{secret_field}' is empty. Enter a valid key in the credential."
        )
    return secret
