from abc import ABC, abstractmethod
from typing import BinaryIO


class FileStorage(ABC):
    """Storage for public web app files, e.g. user-uploaded avatars."""

    __slots__ = ()

    @abstractmethod
    async def save(self, path: str, data: BinaryIO) -> None:
        """Save the data stream to the file with the given path."""
        ...

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Remove the file with the given path."""
        ...

    @abstractmethod
    def url(self, path: str) -> str:
        """Return the public URL of the file with the given path."""
        ...
