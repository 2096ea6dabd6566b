from __future__ import annotations
"""MediaRelay: FastAPI application entry point.

Mounts the generation, callback, task, provider and metrics routes, the
delivery WebSocket relay, and serves the media volume as static files.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from mediarelay.api.router import api_router
from mediarelay.api.ws import router as ws_router
from mediarelay.config import get_settings
from mediarelay.services import pubsub
from mediarelay.services.generation_types import MediaType
from mediarelay.services.runtime import get_runtime, shutdown_runtime

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build the runtime on startup, close clients on shutdown."""
    logger.info("MediaRelay starting up...")
    logger.info("Task store: %s, delivery: %s", settings.TASK_STORE, settings.DELIVERY_BACKEND)
    logger.info("Callbacks will be sent to %s", settings.PUBLIC_BASE_URL)

    os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)
    get_runtime()

    yield

    await shutdown_runtime()
    await pubsub.close_client()
    logger.info("MediaRelay shut down")


app = FastAPI(
    title="MediaRelay API",
    description="Multi-provider media generation with callback correlation and layered fallback",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# CORS, configurable via CORS_ORIGINS env
_cors_origins = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount API routes
app.include_router(api_router)
app.include_router(ws_router)

# Mount media static files
os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)
app.mount("/media", StaticFiles(directory=settings.MEDIA_VOLUME), name="media")


@app.get("/")
async def root():
    return {"service": settings.APP_NAME, "status": "running"}


@app.get("/health")
async def health():
    """Detailed health check."""
    runtime = get_runtime()
    return {
        "status": "healthy",
        "task_store": settings.TASK_STORE,
        "delivery": settings.DELIVERY_BACKEND,
        "providers": {m.value: runtime.table.order_for(m) for m in MediaType},
    }
