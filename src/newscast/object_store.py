"""Binary object storage for finished audio.

Writes objects under a local directory tree that a web server exposes at
``public_base_url``. Writes go to a temporary file first and are renamed into
place, so readers never see a partial artifact.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

from .exceptions import StorageError

logger = logging.getLogger(__name__)

VISIBILITIES = ("public", "private")


class LocalObjectStore:
    """Filesystem-backed object store.

    Public objects land under ``public_root`` and are addressed by URL;
    private objects land under ``private_root`` and are addressed by file URI.
    """

    def __init__(
        self,
        public_root: Path,
        public_base_url: str,
        private_root: Optional[Path] = None,
    ):
        self.public_root = Path(public_root)
        self.private_root = Path(private_root) if private_root else self.public_root.parent / "private"
        self.public_base_url = public_base_url.rstrip("/")

    def _root(self, visibility: str) -> Path:
        if visibility not in VISIBILITIES:
            raise StorageError(f"Unknown visibility '{visibility}'")
        return self.public_root if visibility == "public" else self.private_root

    def _resolve(self, path: str, visibility: str) -> Path:
        root = self._root(visibility).resolve()
        destination = (root / path.lstrip("/")).resolve()
        if root not in destination.parents:
            raise StorageError(f"Object path escapes store root: {path}")
        return destination

    def _write(self, data: bytes, destination: Path) -> None:
        temp_file = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.tmp")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_bytes(data)
            temp_file.replace(destination)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {destination}: {e}") from e

    def url_for(self, path: str, visibility: str = "public") -> str:
        if visibility == "public":
            return f"{self.public_base_url}/{path.lstrip('/')}"
        return self._resolve(path, visibility).as_uri()

    async def store(
        self,
        data: bytes,
        path: str,
        content_type: str = "audio/mpeg",
        visibility: str = "public",
    ) -> str:
        """Store bytes and return the address readers should use.

        Args:
            data: Object contents
            path: Relative key, e.g. ``briefs/<id>/<timestamp>.mp3``
            content_type: MIME type (recorded in the log; files carry no headers)
            visibility: 'public' or 'private'

        Returns:
            Public URL (or file URI for private objects)

        Raises:
            StorageError: If the object could not be written
        """
        destination = self._resolve(path, visibility)
        await asyncio.to_thread(self._write, data, destination)
        logger.info(f"Stored {len(data)} bytes ({content_type}) at {destination}")
        return self.url_for(path, visibility)

    async def delete(self, path: str, visibility: str = "public") -> bool:
        """Remove an object. Missing objects are not an error.

        Returns:
            True if a file was removed
        """
        destination = self._resolve(path, visibility)
        try:
            existed = destination.exists()
            await asyncio.to_thread(destination.unlink, missing_ok=True)
            return existed
        except OSError as e:
            logger.warning(f"Failed to delete {destination}: {e}")
            return False

    def cleanup_temp_files(self, max_age_minutes: int = 60) -> int:
        """Delete temporary files orphaned by interrupted writes.

        Args:
            max_age_minutes: Minimum age before a temp file is considered orphaned

        Returns:
            Number of files cleaned up
        """
        cutoff = time.time() - max_age_minutes * 60
        cleaned_count = 0

        for root in (self.public_root, self.private_root):
            if not root.exists():
                continue
            for temp_file in root.rglob(".*.tmp"):
                try:
                    if temp_file.stat().st_mtime < cutoff:
                        temp_file.unlink()
                        cleaned_count += 1
                        logger.info(f"Cleaned up orphaned temp file: {temp_file}")
                except OSError as e:
                    logger.warning(f"Failed to clean up {temp_file}: {e}")

        return cleaned_count
