"""
Document storage backends.

Both backends expose the same async interface: save, delete and get_url.
"""

from core.config import settings
from core.storage.local import LocalStorage
from core.storage.s3 import S3Storage


def get_storage() -> LocalStorage | S3Storage:
    """Return the storage backend selected by STORAGE_BACKEND."""
    if settings.storage_backend == "s3":
        return S3Storage()
    return LocalStorage()


__all__ = ["LocalStorage", "S3Storage", "get_storage"]
