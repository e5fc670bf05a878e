"""On-disk artifact store for rendered images."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

from starlette.concurrency import run_in_threadpool

from vis_render.config import Settings
from vis_render.errors import StorageError

logger = logging.getLogger(__name__)

IMAGE_EXTENSION = ".png"


def new_artifact_filename() -> str:
    """Random, collision-free filename for one stored image."""
    return f"{uuid4()}{IMAGE_EXTENSION}"


class FileArtifactStore:
    """Writes rendered images into a flat directory and links them publicly.

    Files are never indexed, updated or removed here; static serving of the
    directory under ``url_prefix`` is what makes the links resolve.
    """

    def __init__(self, *, directory: Path, base_url: str, url_prefix: str) -> None:
        self._directory = directory
        self._base_url = base_url.rstrip("/")
        self._url_prefix = url_prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> FileArtifactStore:
        return cls(
            directory=settings.storage_dir,
            base_url=settings.resolved_base_url,
            url_prefix=settings.url_prefix,
        )

    @property
    def directory(self) -> Path:
        return self._directory

    def ensure_directory(self) -> None:
        """Create the storage directory; called once at startup."""
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create storage directory {self._directory}: {exc}") from exc
        logger.info("Artifact storage ready at %s", self._directory)

    def public_url(self, filename: str) -> str:
        return f"{self._base_url}{self._url_prefix}/{filename}"

    def path_for(self, filename: str) -> Path:
        return self._directory / filename

    def _write(self, path: Path, buffer: bytes) -> None:
        try:
            path.write_bytes(buffer)
        except OSError as exc:
            raise StorageError(f"Failed to store rendered image: {exc}") from exc

    async def persist(self, buffer: bytes) -> str:
        """Write ``buffer`` under a fresh name and return its public URL."""
        filename = new_artifact_filename()
        path = self.path_for(filename)
        await run_in_threadpool(self._write, path, buffer)
        logger.debug("Stored %d bytes at %s", len(buffer), path)
        return self.public_url(filename)
