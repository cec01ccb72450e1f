"""Local file storage backend for uploaded documents."""

import asyncio
from pathlib import Path
from typing import Optional
import logging

from core.config import settings

logger = logging.getLogger(__name__)


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class LocalStorage:
    """Stores objects as files below a base directory, keyed by relative path."""

    def __init__(self, base_path: Optional[str] = None):
        """
        Initialize local storage.

        Args:
            base_path: Base directory for file storage
        """
        self.base_path = Path(base_path or settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes base path: {key}")
        return path

    async def save(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
    ) -> str:
        path = self._path(key)
        await asyncio.to_thread(_write_bytes, path, data)
        logger.info(f"Saved file to {path}")
        return key

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        logger.info(f"Deleted file: {path}")
        return True

    async def get_url(self, key: str, expires_in: int = 3600) -> str:
        return self._path(key).as_uri()
