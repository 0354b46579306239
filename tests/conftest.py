"""
Pytest configuration and shared fixtures.

Tests run without a database or object store: the user record and file
storage are replaced with in-memory fakes through dependency overrides.
"""

import os
import random
import tempfile
from collections.abc import AsyncGenerator, Callable
from io import BytesIO
from typing import BinaryIO
from unittest.mock import AsyncMock

# Settings are read at import time, so the environment must be ready before
# anything from board is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("STORAGE_TYPE", "local")
os.environ.setdefault("STORAGE_PATH", tempfile.mkdtemp(prefix="board-test-storage-"))
os.environ.setdefault("STORAGE_BASE_URL", "http://testserver/files")

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from board.api.dependencies import get_avatar_service  # noqa: E402
from board.core.auth import get_current_user  # noqa: E402
from board.core.database import get_db  # noqa: E402
from board.main import app as main_app  # noqa: E402
from board.models.user import Users  # noqa: E402
from board.services.avatar import AvatarService  # noqa: E402
from board.services.user_store import AvatarOwner, UserNotFoundError  # noqa: E402
from board.storage.base import FileStorage  # noqa: E402

STORAGE_URL = "https://files.example.test"


class FakeUserStore:
    """In-memory UserStore over Users objects."""

    def __init__(self, users: dict[int, Users]):
        self.users = users
        self.set_calls: list[tuple[int, str]] = []
        self.fail_set: Exception | None = None

    async def get_avatar_owner(self, user_id: int) -> AvatarOwner:
        user = self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return AvatarOwner(user_id=user_id, name=user.name, avatar=user.avatar)

    async def set_avatar(self, user_id: int, filename: str) -> None:
        if self.fail_set is not None:
            raise self.fail_set
        if user_id not in self.users:
            raise UserNotFoundError(user_id)
        self.set_calls.append((user_id, filename))
        self.users[user_id].avatar = filename


class RecordingStorage(FileStorage):
    """FileStorage that keeps files in a dict and records every call."""

    __slots__ = ("fail_remove", "fail_save", "files", "removed", "saved")

    def __init__(self):
        super().__init__()
        self.files: dict[str, bytes] = {}
        self.saved: list[str] = []
        self.removed: list[str] = []
        self.fail_save: Exception | None = None
        self.fail_remove: Exception | None = None

    async def save(self, path: str, data: BinaryIO) -> None:
        if self.fail_save is not None:
            raise self.fail_save
        self.saved.append(path)
        self.files[path] = data.read()

    async def remove(self, path: str) -> None:
        self.removed.append(path)
        if self.fail_remove is not None:
            raise self.fail_remove
        del self.files[path]

    def url(self, path: str) -> str:
        return f"{STORAGE_URL}/{path}"


def image_bytes(
    size: tuple[int, int],
    image_format: str = "PNG",
    mode: str = "RGB",
    color: str | tuple[int, ...] = "red",
    **save_params,
) -> bytes:
    """Encode a solid-color image."""
    output = BytesIO()
    Image.new(mode, size, color).save(output, format=image_format, **save_params)
    return output.getvalue()


def gif_bytes(
    size: tuple[int, int],
    colors: list[tuple[int, int, int]],
    durations: list[int] | int = 100,
    loop: int | None = 0,
) -> bytes:
    """Encode an animated GIF with one solid frame per color.

    Pillow merges consecutive identical frames when saving, so frames built
    here should differ from their neighbors.
    """
    frames = [Image.new("RGB", size, color) for color in colors]
    params: dict[str, object] = {
        "format": "GIF",
        "save_all": True,
        "append_images": frames[1:],
        "duration": durations,
    }
    if loop is not None:
        params["loop"] = loop
    output = BytesIO()
    frames[0].save(output, **params)
    return output.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    return image_bytes


@pytest.fixture
def make_gif() -> Callable[..., bytes]:
    return gif_bytes


@pytest.fixture
def users() -> dict[int, Users]:
    """Two regular users and an admin."""
    return {
        1: Users(user_id=1, name="Alice", avatar=""),
        2: Users(user_id=2, name="bob", avatar="old-avatar.png"),
        3: Users(user_id=3, name="Moderator", avatar="", admin=True),
    }


@pytest.fixture
def user_store(users: dict[int, Users]) -> FakeUserStore:
    return FakeUserStore(users)


@pytest.fixture
def storage() -> RecordingStorage:
    storage = RecordingStorage()
    storage.files["avatars/old-avatar.png"] = b"old"
    return storage


@pytest.fixture
def avatar_service(user_store: FakeUserStore, storage: RecordingStorage) -> AvatarService:
    return AvatarService(user_store, storage, rng=random.Random(1234))


@pytest.fixture
def current_user(users: dict[int, Users]) -> Users:
    """The authenticated user for API tests (user 1, not an admin)."""
    return users[1]


@pytest.fixture
def app(avatar_service: AvatarService, current_user: Users) -> FastAPI:
    """
    FastAPI app with the database, avatar service and current user overridden.

    Tests that exercise authentication pop the get_current_user override.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield AsyncMock(spec=AsyncSession)

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_avatar_service] = lambda: avatar_service
    main_app.dependency_overrides[get_current_user] = lambda: current_user
    yield main_app
    main_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for API tests.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/users/me")
            assert response.status_code == 200
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
