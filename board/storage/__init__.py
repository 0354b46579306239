"""
File storage backends.

Avatar files are stored under the "avatars/" prefix of whichever backend
STORAGE_TYPE selects.
"""

from functools import cache

from board.config import settings
from board.storage.base import FileStorage
from board.storage.gcs import GCSFileStorage
from board.storage.local import LocalFileStorage
from board.storage.s3 import S3FileStorage


@cache
def get_file_storage() -> FileStorage:
    """Build the configured file storage backend (once per process)."""
    if settings.STORAGE_TYPE == "local":
        return LocalFileStorage(settings.STORAGE_PATH, settings.STORAGE_BASE_URL)
    if settings.STORAGE_TYPE == "s3":
        if not settings.S3_BUCKET:
            raise ValueError("S3_BUCKET must be set when STORAGE_TYPE is 's3'")
        return S3FileStorage(settings.S3_BUCKET, settings.S3_REGION, settings.S3_ENDPOINT)
    if settings.STORAGE_TYPE == "gcs":
        if not settings.GCS_BUCKET:
            raise ValueError("GCS_BUCKET must be set when STORAGE_TYPE is 'gcs'")
        return GCSFileStorage(settings.GCS_BUCKET, settings.GCS_SERVICE_ACCOUNT_FILE)
    raise ValueError(f"Unsupported storage type {settings.STORAGE_TYPE!r}")


__all__ = ["FileStorage", "GCSFileStorage", "LocalFileStorage", "S3FileStorage", "get_file_storage"]
