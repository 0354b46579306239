"""
Unit tests for the avatar service.

Tests cover:
- Saving uploads (validation gate, output format, storage, record update)
- Ordering of store / record update / old file removal
- Failure handling at each stage
- Letter avatar generation
- Avatar URLs
"""

from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

from board.services import gif_codec
from board.services.avatar import AVATAR_PREFIX, AvatarSaveError, AvatarService
from board.services.image_processing import (
    ImageDecodeError,
    ImageTooLargeError,
    ImageTooSmallError,
)
from board.services.letter_avatar import draw_letter_avatar
from board.services.user_store import AvatarOwner, UserNotFoundError


def _stored_image(storage, filename: str) -> Image.Image:
    img = Image.open(BytesIO(storage.files[AVATAR_PREFIX + filename]))
    img.load()
    return img


class TestSaveAvatar:
    """Tests for AvatarService.save."""

    async def test_opaque_upload_stored_as_jpeg(self, avatar_service, storage, users, make_image):
        filename = await avatar_service.save(1, make_image((300, 200), "PNG"))

        assert filename.endswith(".jpg")
        assert storage.saved == [AVATAR_PREFIX + filename]
        assert users[1].avatar == filename

        img = _stored_image(storage, filename)
        assert img.format == "JPEG"
        assert img.size == (100, 100)

    async def test_transparent_upload_stored_as_png(self, avatar_service, storage, make_image):
        data = make_image((120, 120), "PNG", mode="RGBA", color=(0, 0, 0, 0))

        filename = await avatar_service.save(1, data)

        assert filename.endswith(".png")
        img = _stored_image(storage, filename)
        assert img.format == "PNG"
        assert img.mode == "RGBA"
        assert img.size == (100, 100)

    async def test_new_name_every_save(self, avatar_service, make_image):
        data = make_image((100, 100))

        first = await avatar_service.save(1, data)
        second = await avatar_service.save(1, data)

        assert first != second

    async def test_old_avatar_removed_after_update(
        self, avatar_service, storage, user_store, users, make_image
    ):
        filename = await avatar_service.save(2, make_image((100, 100)))

        assert user_store.set_calls == [(2, filename)]
        assert storage.removed == [AVATAR_PREFIX + "old-avatar.png"]
        assert AVATAR_PREFIX + "old-avatar.png" not in storage.files
        assert AVATAR_PREFIX + filename in storage.files
        assert users[2].avatar == filename

    async def test_no_removal_without_previous_avatar(self, avatar_service, storage, make_image):
        await avatar_service.save(1, make_image((100, 100)))
        assert storage.removed == []

    async def test_animated_gif_keeps_frames(self, avatar_service, storage, make_gif):
        data = make_gif((150, 90), [(255, 0, 0), (0, 255, 0), (0, 0, 255)], [100, 200, 300])

        filename = await avatar_service.save(1, data)

        assert filename.endswith(".gif")
        animation = gif_codec.decode(storage.files[AVATAR_PREFIX + filename])
        assert (animation.width, animation.height) == (100, 100)
        assert len(animation.frames) == 3
        assert [frame.delay for frame in animation.frames] == [10, 20, 30]

    @pytest.mark.parametrize(
        ("data", "error"),
        [
            (b"definitely not an image", ImageDecodeError),
            (None, ImageTooSmallError),
        ],
    )
    async def test_invalid_upload_touches_nothing(
        self, avatar_service, storage, user_store, users, make_image, data, error
    ):
        """Rejected uploads make no storage calls and leave the record alone."""
        if data is None:
            data = make_image((40, 40))

        with pytest.raises(error):
            await avatar_service.save(2, data)

        assert storage.saved == []
        assert storage.removed == []
        assert user_store.set_calls == []
        assert users[2].avatar == "old-avatar.png"

    async def test_too_large_upload(self, avatar_service, storage, make_image):
        with pytest.raises(ImageTooLargeError):
            await avatar_service.save(1, make_image((2001, 60)))
        assert storage.saved == []

    async def test_validation_before_user_lookup(self, avatar_service):
        """Bad data is reported as such even for unknown users."""
        with pytest.raises(ImageDecodeError):
            await avatar_service.save(999, b"garbage")

    async def test_unknown_user(self, avatar_service, storage, make_image):
        with pytest.raises(UserNotFoundError):
            await avatar_service.save(999, make_image((100, 100)))
        assert storage.saved == []

    async def test_prepare_failure(self, avatar_service, storage, make_image):
        with patch("board.services.avatar.prepare_image", side_effect=RuntimeError("boom")):
            with pytest.raises(AvatarSaveError) as exc_info:
                await avatar_service.save(1, make_image((100, 100)))

        assert exc_info.value.stage == "prepare"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert storage.saved == []

    async def test_store_failure(self, avatar_service, storage, user_store, users, make_image):
        storage.fail_save = OSError("disk full")

        with pytest.raises(AvatarSaveError) as exc_info:
            await avatar_service.save(2, make_image((100, 100)))

        assert exc_info.value.stage == "store"
        assert user_store.set_calls == []
        assert users[2].avatar == "old-avatar.png"

    async def test_record_update_failure_keeps_old_file(
        self, avatar_service, storage, user_store, users, make_image
    ):
        """If the record can't be updated the old file must survive."""
        user_store.fail_set = RuntimeError("database gone")

        with pytest.raises(AvatarSaveError) as exc_info:
            await avatar_service.save(2, make_image((100, 100)))

        assert exc_info.value.stage == "update_record"
        assert len(storage.saved) == 1
        assert storage.removed == []
        assert AVATAR_PREFIX + "old-avatar.png" in storage.files
        assert users[2].avatar == "old-avatar.png"

    async def test_remove_failure_is_logged_not_raised(
        self, avatar_service, storage, users, make_image
    ):
        storage.fail_remove = FileNotFoundError("already gone")

        with patch("board.services.avatar.logger") as mock_logger:
            filename = await avatar_service.save(2, make_image((100, 100)))

        assert users[2].avatar == filename
        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.args[0] == "avatar_remove_failed"
        assert mock_logger.warning.call_args.kwargs["filename"] == "old-avatar.png"


class TestGenerateAvatar:
    """Tests for AvatarService.generate."""

    async def test_generates_png(self, avatar_service, storage, users):
        filename = await avatar_service.generate(1)

        assert filename.endswith(".png")
        assert users[1].avatar == filename
        img = _stored_image(storage, filename)
        assert img.format == "PNG"
        assert img.size == (100, 100)

    @pytest.mark.parametrize(("name", "letter"), [("Alice", "A"), ("bob", "B"), ("", " ")])
    async def test_letter_from_name(self, avatar_service, users, name, letter):
        users[1].name = name

        with patch(
            "board.services.avatar.draw_letter_avatar", wraps=draw_letter_avatar
        ) as mock_draw:
            await avatar_service.generate(1)

        mock_draw.assert_called_once()
        assert mock_draw.call_args.args == (100, letter)

    async def test_replaces_existing_avatar(self, avatar_service, storage, users):
        filename = await avatar_service.generate(2)

        assert users[2].avatar == filename
        assert storage.removed == [AVATAR_PREFIX + "old-avatar.png"]

    async def test_unknown_user(self, avatar_service, storage):
        with pytest.raises(UserNotFoundError):
            await avatar_service.generate(999)
        assert storage.saved == []


class TestAvatarUrl:
    """Tests for AvatarService.url."""

    def test_url(self, avatar_service, storage):
        owner = AvatarOwner(user_id=1, name="Alice", avatar="abc.png")
        assert avatar_service.url(owner) == storage.url("avatars/abc.png")

    def test_no_avatar(self, avatar_service):
        assert avatar_service.url(AvatarOwner(user_id=1, name="Alice", avatar="")) == ""

    def test_idempotent(self, avatar_service, users):
        users[2].avatar = "abc.jpg"
        assert avatar_service.url(users[2]) == avatar_service.url(users[2])


def test_service_defaults_rng(user_store, storage):
    service = AvatarService(user_store, storage)
    assert service.rng is not None
