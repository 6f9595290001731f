"""Profile endpoints: current profile, list, delete, account details, avatar and cover image."""

from typing import Annotated

from fastapi import APIRouter, File, UploadFile

from app.api.deps import CurrentUser, DbSession
from app.schemas.response import ApiResponse
from app.schemas.user import UpdateAccountBody, UserOut
from app.services import accounts, media

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "/profile",
    response_model=ApiResponse[UserOut],
    summary="Get current authenticated user",
    responses={401: {"description": "Not authenticated or invalid token"}},
)
async def get_profile(user: CurrentUser) -> ApiResponse[UserOut]:
    return ApiResponse[UserOut].ok(UserOut.model_validate(user), "User profile fetched successfully")


@router.get(
    "/",
    response_model=ApiResponse[list[UserOut]],
    summary="List all users",
    responses={401: {"description": "Not authenticated"}},
)
async def list_users(session: DbSession, user: CurrentUser) -> ApiResponse[list[UserOut]]:
    rows = await accounts.list_users(session)
    return ApiResponse[list[UserOut]].ok([UserOut.model_validate(u) for u in rows], "Users fetched successfully")


@router.delete(
    "/{user_id}",
    response_model=ApiResponse[dict],
    summary="Delete a user by id",
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "User not found"},
    },
)
async def delete_user(session: DbSession, user: CurrentUser, user_id: str) -> ApiResponse[dict]:
    await accounts.delete_user(session, user_id)
    return ApiResponse[dict].ok({}, "User deleted successfully")


@router.put(
    "/update-account",
    response_model=ApiResponse[UserOut],
    summary="Update full name, username and email",
    responses={
        400: {"description": "Missing or invalid fields"},
        401: {"description": "Not authenticated"},
        409: {"description": "Username or email already taken"},
    },
)
async def update_account(session: DbSession, user: CurrentUser, body: UpdateAccountBody) -> ApiResponse[UserOut]:
    updated = await accounts.update_account(session, user, body)
    return ApiResponse[UserOut].ok(UserOut.model_validate(updated), "Account details updated successfully")


@router.put(
    "/update-avatar",
    response_model=ApiResponse[UserOut],
    summary="Replace the avatar image",
    responses={
        400: {"description": "Avatar file missing or not an image"},
        401: {"description": "Not authenticated"},
        500: {"description": "Media upload failed"},
    },
)
async def update_avatar(
    session: DbSession,
    user: CurrentUser,
    avatar: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[UserOut]:
    async with media.staged(avatar) as avatar_path:
        updated = await accounts.update_avatar(session, user, avatar_path)
    return ApiResponse[UserOut].ok(UserOut.model_validate(updated), "Avatar updated successfully")


@router.put(
    "/update-cover-image",
    response_model=ApiResponse[UserOut],
    summary="Replace the cover image",
    responses={
        400: {"description": "Cover image file missing or not an image"},
        401: {"description": "Not authenticated"},
        500: {"description": "Media upload failed"},
    },
)
async def update_cover_image(
    session: DbSession,
    user: CurrentUser,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserOut]:
    async with media.staged(cover_image) as cover_path:
        updated = await accounts.update_cover_image(session, user, cover_path)
    return ApiResponse[UserOut].ok(UserOut.model_validate(updated), "Cover image updated successfully")
