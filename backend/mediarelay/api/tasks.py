from __future__ import annotations
"""Task API: inspect pending generation tasks."""

from fastapi import APIRouter, Depends, HTTPException

from mediarelay.schemas import TaskRead
from mediarelay.services.runtime import Runtime, get_runtime

router = APIRouter()


@router.get("/{submission_id}", response_model=TaskRead)
async def get_task(submission_id: str, runtime: Runtime = Depends(get_runtime)):
    """Return a pending task. Settled tasks are removed and answer 404."""
    task = await runtime.tracker.lookup(submission_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskRead(**task.to_dict())
