"""Local media volume: generated files are served back under ``/media``."""

from __future__ import annotations

import logging
import os
import uuid

from mediarelay.services.generation_types import MediaType

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    MediaType.IMAGE: "png",
    MediaType.IMAGE_EDIT: "png",
    MediaType.VIDEO: "mp4",
    MediaType.IMAGE_TO_VIDEO: "mp4",
    MediaType.MUSIC: "mp3",
}


class MediaStore:
    def __init__(self, root: str, url_prefix: str = "/media") -> None:
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")

    def save(
        self,
        data: bytes,
        media_type: MediaType,
        *,
        name: str | None = None,
        extension: str | None = None,
    ) -> str:
        """Write ``data`` under ``<root>/<media_type>/`` and return the relative path."""
        ext = extension or _EXTENSIONS[media_type]
        safe_name = "".join(c for c in (name or uuid.uuid4().hex) if c.isalnum() or c in "-_")
        dir_path = os.path.join(self.root, media_type.value)
        os.makedirs(dir_path, exist_ok=True)

        filename = f"{safe_name or uuid.uuid4().hex}.{ext}"
        with open(os.path.join(dir_path, filename), "wb") as f:
            f.write(data)

        rel_path = f"{media_type.value}/{filename}"
        logger.info("Saved %d bytes to media volume: %s", len(data), rel_path)
        return rel_path

    def public_url(self, rel_path: str) -> str:
        return f"{self.url_prefix}/{rel_path}"
