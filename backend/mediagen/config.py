"""Application configuration using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Media generation gateway settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "MediaGen"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- FAL ---
    FAL_API_KEY: str = ""
    FAL_QUEUE_URL: str = "https://queue.fal.run"
    FAL_SYNC_URL: str = "https://fal.run"

    # --- Genbo ---
    GENBO_API_KEY: str = ""
    GENBO_BASE_URL: str = "https://api.genbo.ai"

    # --- Replicate ---
    REPLICATE_API_TOKEN: str = ""
    REPLICATE_BASE_URL: str = "https://api.replicate.com"

    # --- Execution ---
    SYNC_TIMEOUT_SECONDS: float = 60.0
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    POLL_INTERVAL_SECONDS: float = 2.0
    POLL_MAX_WAIT_SECONDS: float | None = None  # None = poll until terminal
    POLL_TRANSPORT_RETRIES: int = 0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
