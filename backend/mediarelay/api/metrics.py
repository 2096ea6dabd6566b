from __future__ import annotations
"""Metrics API: per-provider call statistics."""

from fastapi import APIRouter, Depends

from mediarelay.services.runtime import Runtime, get_runtime

router = APIRouter()


@router.get("/providers")
async def provider_metrics(runtime: Runtime = Depends(get_runtime)):
    """Return call/error/latency statistics for every provider attempted so far."""
    return {"providers": runtime.dispatcher.get_metrics()}
