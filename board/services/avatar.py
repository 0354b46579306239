"""
Avatar service for user profile images.

Handles validation, resizing, re-encoding, storage and cleanup of avatar
images, and generation of letter avatars.

Every update stores a new file under a fresh name. The user record is
updated only after the file is stored, and the previous file is removed
only after the record points at the new one.
"""

import random
import uuid
from asyncio import get_running_loop
from collections.abc import Callable
from contextvars import copy_context
from functools import partial
from io import BytesIO
from typing import Any

from board.config import settings
from board.core.logging import get_logger
from board.services import gif_codec
from board.services.image_processing import (
    AvatarError,
    encode_image,
    encode_png,
    prepare_animation,
    prepare_image,
    probe_image,
)
from board.services.letter_avatar import draw_letter_avatar, pick_letter
from board.services.user_store import AvatarOwner, HasAvatar, UserStore
from board.storage.base import FileStorage

logger = get_logger(__name__)

AVATAR_PREFIX = "avatars/"


class AvatarSaveError(AvatarError):
    """Processing, storing or recording a new avatar failed.

    ``stage`` names the step that failed: prepare, draw, encode, store or
    update_record. The original exception is chained as ``__cause__``.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"avatar: {stage} failed: {cause}")
        self.stage = stage


class AvatarService:
    """Avatar processing service.

    Args:
        user_store: Reads and updates the user's avatar field
        file_storage: Where avatar files are stored
        rng: Random source for letter avatar backgrounds
    """

    def __init__(
        self,
        user_store: UserStore,
        file_storage: FileStorage,
        rng: random.Random | None = None,
    ):
        self.user_store = user_store
        self.file_storage = file_storage
        self.rng = rng or random.Random()

    async def save(self, user_id: int, image_data: bytes) -> str:
        """Validate, process and store a new avatar for the user.

        Returns:
            Filename of the new avatar

        Raises:
            ImageDecodeError, ImageTooSmallError, ImageTooLargeError: Invalid upload,
                nothing was stored or changed
            AvatarSaveError: Processing, storage or the record update failed
        """
        info = probe_image(
            image_data,
            min_dimension=settings.AVATAR_MIN_DIMENSION,
            max_dimension=settings.AVATAR_MAX_DIMENSION,
        )
        owner = await self.user_store.get_avatar_owner(user_id)
        size = settings.AVATAR_SIZE

        if info.format == "GIF":
            animation = await self._run("prepare", prepare_animation, image_data, size)
            content = await self._run("encode", gif_codec.encode, animation)
            ext = "gif"
        else:
            image = await self._run("prepare", prepare_image, image_data, info.format, size)
            content, ext = await self._run(
                "encode", encode_image, image, settings.AVATAR_JPEG_QUALITY
            )

        filename = await self._store(content, ext)
        await self._replace(owner, filename)

        logger.info(
            "avatar_uploaded",
            user_id=user_id,
            filename=filename,
            source_format=info.format,
            source_size=(info.width, info.height),
        )
        return filename

    async def generate(self, user_id: int) -> str:
        """Generate a letter avatar from the user's name and make it current.

        Returns:
            Filename of the new avatar
        """
        owner = await self.user_store.get_avatar_owner(user_id)
        letter = pick_letter(owner.name)

        image = await self._run(
            "draw", partial(draw_letter_avatar, rng=self.rng), settings.AVATAR_SIZE, letter
        )
        # Letter avatars always carry alpha, so they are always PNG
        content = await self._run("encode", encode_png, image)

        filename = await self._store(content, "png")
        await self._replace(owner, filename)

        logger.info("avatar_generated", user_id=user_id, filename=filename)
        return filename

    def url(self, user: HasAvatar) -> str:
        """Public URL of the user's avatar, or "" if the user has none."""
        if not user.avatar:
            return ""
        return self.file_storage.url(AVATAR_PREFIX + user.avatar)

    async def _run(self, stage: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run CPU-bound work in the default executor, wrapping failures.

        The work runs in a copy of the current context so its log events
        keep the request's log context.
        """
        loop = get_running_loop()
        context = copy_context()
        try:
            return await loop.run_in_executor(None, context.run, func, *args)
        except Exception as e:
            raise AvatarSaveError(stage, e) from e

    async def _store(self, content: bytes, ext: str) -> str:
        filename = f"{uuid.uuid4()}.{ext}"
        try:
            await self.file_storage.save(AVATAR_PREFIX + filename, BytesIO(content))
        except Exception as e:
            raise AvatarSaveError("store", e) from e

        logger.info("avatar_saved", filename=filename, size_bytes=len(content))
        return filename

    async def _replace(self, owner: AvatarOwner, filename: str) -> None:
        """Point the user at the new file, then remove the previous one."""
        try:
            await self.user_store.set_avatar(owner.user_id, filename)
        except Exception as e:
            raise AvatarSaveError("update_record", e) from e

        if owner.avatar:
            await self._remove(owner.avatar)

    async def _remove(self, filename: str) -> None:
        """Remove a superseded avatar file. Failures are logged only."""
        try:
            await self.file_storage.remove(AVATAR_PREFIX + filename)
        except Exception as e:
            logger.warning(
                "avatar_remove_failed",
                filename=filename,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        logger.info("old_avatar_deleted", filename=filename)
