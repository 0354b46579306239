import shutil
from asyncio import get_running_loop
from pathlib import Path
from typing import BinaryIO

from typing_extensions import override

from board.storage.base import FileStorage


class LocalFileStorage(FileStorage):
    """Local file storage served under a base URL."""

    __slots__ = ("_base_dir", "_base_url")

    def __init__(self, directory: str | Path, base_url: str):
        super().__init__()
        self._base_dir = Path(directory)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/")

    @override
    async def save(self, path: str, data: BinaryIO) -> None:
        loop = get_running_loop()
        await loop.run_in_executor(None, self._write, self._get_path(path), data)

    @override
    async def remove(self, path: str) -> None:
        # Missing files are reported, the caller decides whether that matters
        loop = get_running_loop()
        await loop.run_in_executor(None, self._get_path(path).unlink)

    @override
    def url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _get_path(self, path: str) -> Path:
        full_path = (self._base_dir / path).resolve()
        if not full_path.is_relative_to(self._base_dir.resolve()):
            raise ValueError(f"Path {path!r} escapes the storage directory")
        return full_path

    @staticmethod
    def _write(full_path: Path, data: BinaryIO) -> None:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = full_path.with_name(f".{full_path.name}.tmp")
        try:
            with temp_path.open("xb") as f:
                shutil.copyfileobj(data, f)
            temp_path.rename(full_path)
        finally:
            temp_path.unlink(missing_ok=True)
