"""Provider API: list the static provider/media-type capability table."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from mediarelay.services.generation_types import MediaType
from mediarelay.services.runtime import Runtime, get_runtime

router = APIRouter()


@router.get("")
async def list_providers(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """List every provider with its capabilities and the per-media-type order."""
    table = runtime.table
    return {
        "providers": table.to_dict_list(),
        "order": {m.value: table.order_for(m) for m in MediaType},
        "canonical": {m.value: table.canonical_for(m) for m in MediaType},
    }
