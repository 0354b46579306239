from asyncio import get_running_loop
from typing import BinaryIO

from typing_extensions import override

from google.cloud import storage

from board.storage.base import FileStorage

# Avatars are immutable (every update gets a new name), so caches may keep them
CACHE_CONTROL = "public, max-age=86400"


class GCSFileStorage(FileStorage):
    """File storage based on Google Cloud Storage, objects are publicly readable."""

    __slots__ = ("_bucket", "_bucket_name", "_service_account_file")

    def __init__(self, bucket: str, service_account_file: str | None = None):
        super().__init__()
        self._bucket_name = bucket
        self._service_account_file = service_account_file
        self._bucket: storage.Bucket | None = None

    @override
    async def save(self, path: str, data: BinaryIO) -> None:
        loop = get_running_loop()
        await loop.run_in_executor(None, self._upload, path, data)

    @override
    async def remove(self, path: str) -> None:
        loop = get_running_loop()
        await loop.run_in_executor(None, self._delete, path)

    @override
    def url(self, path: str) -> str:
        return f"https://storage.googleapis.com/{self._bucket_name}/{path}"

    def _get_bucket(self) -> storage.Bucket:
        # The client reads credentials when created, so it is created on first use
        if self._bucket is None:
            if self._service_account_file:
                client = storage.Client.from_service_account_json(self._service_account_file)
            else:
                client = storage.Client()
            self._bucket = client.bucket(self._bucket_name)
        return self._bucket

    def _upload(self, path: str, data: BinaryIO) -> None:
        blob = self._get_bucket().blob(path)
        blob.cache_control = CACHE_CONTROL
        blob.upload_from_file(data, predefined_acl="publicRead")

    def _delete(self, path: str) -> None:
        self._get_bucket().blob(path).delete()
