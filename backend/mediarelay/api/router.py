from __future__ import annotations
"""Master API router: mounts all sub-routers."""

from fastapi import APIRouter

from mediarelay.api.callbacks import router as callbacks_router
from mediarelay.api.generation import router as generation_router
from mediarelay.api.metrics import router as metrics_router
from mediarelay.api.providers import router as providers_router
from mediarelay.api.tasks import router as tasks_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(generation_router, prefix="/generate", tags=["Generation"])
api_router.include_router(callbacks_router, tags=["Provider Callbacks"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(providers_router, prefix="/providers", tags=["Providers"])
api_router.include_router(metrics_router, prefix="/metrics", tags=["Metrics"])
