"""
Users API endpoints (profile and avatar)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Path, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from board.api.dependencies import get_avatar_service
from board.config import settings
from board.core.auth import get_current_user
from board.core.database import get_db
from board.core.logging import get_logger
from board.models.user import Users
from board.schemas.user import AvatarResponse, AvatarUpload, NameUpdate, UserResponse
from board.services.avatar import AvatarSaveError, AvatarService
from board.services.image_processing import (
    ImageDecodeError,
    ImageTooLargeError,
    ImageTooSmallError,
)
from board.services.user_store import UserNotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _user_response(user: Users, avatar_service: AvatarService) -> UserResponse:
    response = UserResponse.model_validate(user)
    response.avatar_url = avatar_service.url(user)
    return response


def _avatar_response(user_id: int, filename: str, avatar_service: AvatarService) -> AvatarResponse:
    response = AvatarResponse(user_id=user_id, avatar=filename, avatar_url="")
    response.avatar_url = avatar_service.url(response)
    return response


def _check_can_edit(current_user: Users, user_id: int) -> None:
    """Users can change their own avatar, admins can change anyone's."""
    if current_user.user_id != user_id and not current_user.admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to update this user's avatar",
        )


async def _read_upload(avatar: UploadFile) -> bytes:
    """Read an uploaded file, rejecting it if it exceeds MAX_AVATAR_UPLOAD_SIZE."""
    content = await avatar.read(settings.MAX_AVATAR_UPLOAD_SIZE + 1)
    if len(content) > settings.MAX_AVATAR_UPLOAD_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Avatar file too large. Maximum size is {settings.MAX_AVATAR_UPLOAD_SIZE // 1024}KB",
        )
    return content


async def _save_avatar(avatar_service: AvatarService, user_id: int, image_data: bytes) -> AvatarResponse:
    """
    Run the avatar pipeline and map its errors to HTTP responses.

    Invalid images are client errors (400); processing and storage
    failures are server errors (500).
    """
    try:
        filename = await avatar_service.save(user_id, image_data)
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail="Avatar image decode failed") from e
    except ImageTooSmallError as e:
        raise HTTPException(status_code=400, detail="Avatar image too small") from e
    except ImageTooLargeError as e:
        raise HTTPException(status_code=400, detail="Avatar image too large") from e
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="User not found") from e
    except AvatarSaveError as e:
        logger.error(
            "avatar_save_failed",
            user_id=user_id,
            stage=e.stage,
            error=str(e.__cause__ or e),
            error_type=type(e.__cause__ or e).__name__,
        )
        raise HTTPException(status_code=500, detail="Server error") from e

    return _avatar_response(user_id, filename, avatar_service)


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    current_user: Annotated[Users, Depends(get_current_user)],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
) -> UserResponse:
    """
    Get the currently authenticated user, including the avatar URL.
    """
    return _user_response(current_user, avatar_service)


@router.put("/me/name", response_model=UserResponse)
async def set_current_user_name(
    body: NameUpdate,
    current_user: Annotated[Users, Depends(get_current_user)],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    """
    Set the display name of the current user.

    Users without an avatar get a letter avatar generated from the new name.
    """
    current_user.name = body.name
    await db.commit()

    response = _user_response(current_user, avatar_service)

    if not current_user.avatar:
        try:
            response.avatar = await avatar_service.generate(current_user.user_id)  # type: ignore[arg-type]
        except AvatarSaveError as e:
            logger.error(
                "avatar_generate_failed",
                user_id=current_user.user_id,
                stage=e.stage,
                error=str(e.__cause__ or e),
            )
        else:
            response.avatar_url = avatar_service.url(response)

    return response


@router.get("/{user_id}/avatar", response_model=AvatarResponse)
async def get_user_avatar(
    user_id: Annotated[int, Path(description="User ID")],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
) -> AvatarResponse:
    """
    Get a user's avatar filename and public URL ("" if the user has none).
    """
    try:
        owner = await avatar_service.user_store.get_avatar_owner(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="User not found") from e

    return AvatarResponse(user_id=user_id, avatar=owner.avatar, avatar_url=avatar_service.url(owner))


@router.post("/me/avatar", response_model=AvatarResponse)
async def upload_current_user_avatar(
    avatar: Annotated[UploadFile, File(description="Avatar image file")],
    current_user: Annotated[Users, Depends(get_current_user)],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
) -> AvatarResponse:
    """
    Upload avatar for the currently authenticated user.

    Accepts JPEG, PNG, GIF (animated GIFs keep their animation), BMP, TIFF
    and WEBP between 50x50 and 2000x2000 pixels. The avatar is stored as a
    100x100 JPEG, PNG or GIF.
    """
    content = await _read_upload(avatar)
    return await _save_avatar(avatar_service, current_user.user_id, content)  # type: ignore[arg-type]


@router.post("/me/avatar/generate", response_model=AvatarResponse)
async def generate_current_user_avatar(
    current_user: Annotated[Users, Depends(get_current_user)],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
) -> AvatarResponse:
    """
    Replace the current user's avatar with a letter avatar.
    """
    user_id: int = current_user.user_id  # type: ignore[assignment]
    try:
        filename = await avatar_service.generate(user_id)
    except AvatarSaveError as e:
        logger.error(
            "avatar_generate_failed",
            user_id=user_id,
            stage=e.stage,
            error=str(e.__cause__ or e),
        )
        raise HTTPException(status_code=500, detail="Server error") from e

    return _avatar_response(user_id, filename, avatar_service)


@router.post("/{user_id}/avatar", response_model=AvatarResponse)
async def upload_user_avatar(
    user_id: Annotated[int, Path(description="User ID")],
    avatar: Annotated[UploadFile, File(description="Avatar image file")],
    current_user: Annotated[Users, Depends(get_current_user)],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
) -> AvatarResponse:
    """
    Upload avatar for a specified user.

    - Regular users can only upload their own avatar
    - Admins can upload avatars for any user
    """
    _check_can_edit(current_user, user_id)
    content = await _read_upload(avatar)
    return await _save_avatar(avatar_service, user_id, content)


@router.put("/{user_id}/avatar", response_model=AvatarResponse)
async def set_user_avatar(
    user_id: Annotated[int, Path(description="User ID")],
    body: AvatarUpload,
    current_user: Annotated[Users, Depends(get_current_user)],
    avatar_service: Annotated[AvatarService, Depends(get_avatar_service)],
) -> AvatarResponse:
    """
    Set a user's avatar from base64-encoded image data.

    - Regular users can only set their own avatar
    - Admins can set avatars for any user
    """
    _check_can_edit(current_user, user_id)

    if body.decoded_size() > settings.MAX_AVATAR_UPLOAD_SIZE:
        raise HTTPException(status_code=400, detail="Avatar data too large")

    try:
        image_data = body.decode()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid avatar data") from e

    return await _save_avatar(avatar_service, user_id, image_data)
