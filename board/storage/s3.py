from typing import BinaryIO

from typing_extensions import override

import aioboto3

from board.storage.base import FileStorage

_S3 = aioboto3.Session()


class S3FileStorage(FileStorage):
    """File storage based on AWS S3 (or an S3-compatible endpoint)."""

    __slots__ = ("_bucket", "_endpoint_url", "_region")

    def __init__(self, bucket: str, region: str, endpoint_url: str | None = None):
        super().__init__()
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None

    @override
    async def save(self, path: str, data: BinaryIO) -> None:
        async with self._client() as s3:
            await s3.put_object(Bucket=self._bucket, Key=path, Body=data.read())

    @override
    async def remove(self, path: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=self._bucket, Key=path)

    @override
    def url(self, path: str) -> str:
        if self._endpoint_url is not None:
            return f"{self._endpoint_url}/{self._bucket}/{path}"
        return f"https://{self._bucket}.s3.amazonaws.com/{path}"

    def _client(self):
        return _S3.client("s3", region_name=self._region, endpoint_url=self._endpoint_url)
