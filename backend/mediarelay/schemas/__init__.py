"""Pydantic v2 schemas package."""

from mediarelay.schemas.generation import GenerateRequest, GenerateResponse, TaskRead

__all__ = [
    "GenerateRequest",
    "GenerateResponse",
    "TaskRead",
]
