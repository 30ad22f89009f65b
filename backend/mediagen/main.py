"""MediaGen FastAPI application entry point.

Mounts the API routes and owns the pooled HTTP client shared by every
invocation for the lifetime of the process.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from mediagen.api.router import api_router
from mediagen.config import get_settings
from mediagen.services.generation import GenerationService
from mediagen.services.model_registry import PLATFORM_REGISTRY
from mediagen.services.transport import HttpTransport

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: open the shared HTTP client, close it on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info(
        "Platforms: %s",
        ", ".join(p.value for p in PLATFORM_REGISTRY.list_platforms()),
    )

    http_client = httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_SECONDS)
    app.state.generation_service = GenerationService(
        transport=HttpTransport(http_client, default_timeout=settings.REQUEST_TIMEOUT_SECONDS),
        settings=settings,
    )

    yield

    await http_client.aclose()
    logger.info("%s shut down", settings.APP_NAME)


app = FastAPI(
    title="MediaGen API",
    description="Unified gateway to third-party AI image, video and audio generation platforms",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Mount API routes
app.include_router(api_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": settings.APP_NAME,
        "status": "running",
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "platforms": [p.value for p in PLATFORM_REGISTRY.list_platforms()],
    }
