"""Master API router: mounts all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from mediagen.api.generate import router as generate_router
from mediagen.api.models import router as models_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(models_router, tags=["Models"])
api_router.include_router(generate_router, tags=["Generation"])
