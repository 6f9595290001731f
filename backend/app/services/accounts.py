"""Account operations: register, login, logout, refresh, password and profile changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError, Unauthorized, ValidationError
from app.models.user import User
from app.schemas.user import ChangePasswordBody, LoginBody, RegisterForm, UpdateAccountBody
from app.services import media, tokens, users

logger = logging.getLogger(__name__)

USERNAME_MIN, USERNAME_MAX = 3, 30
FULL_NAME_MAX = 100
PASSWORD_MIN, PASSWORD_MAX = 6, 1024


@dataclass(frozen=True)
class LoginResult:
    user: User
    issued: tokens.IssuedTokens


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if _blank(value)]
    if missing:
        raise ValidationError("All fields are required", errors=[f"{name} is required" for name in missing])


def _check_profile_fields(full_name: str, username: str, email: str) -> None:
    errors = []
    if not USERNAME_MIN <= len(username.strip()) <= USERNAME_MAX:
        errors.append(f"username must be {USERNAME_MIN}-{USERNAME_MAX} characters")
    if len(full_name.strip()) > FULL_NAME_MAX:
        errors.append(f"fullName must be at most {FULL_NAME_MAX} characters")
    if "@" not in email:
        errors.append("email is invalid")
    if errors:
        raise ValidationError("Invalid user details", errors=errors)


def _check_password(password: str, field: str = "password") -> None:
    if not PASSWORD_MIN <= len(password) <= PASSWORD_MAX:
        raise ValidationError(
            "Invalid password", errors=[f"{field} must be {PASSWORD_MIN}-{PASSWORD_MAX} characters"]
        )


async def register(
    session: AsyncSession,
    form: RegisterForm,
    avatar_path: Path | None,
    cover_image_path: Path | None = None,
) -> User:
    """Validate, check uniqueness, upload media, then create.

    No record exists unless every step succeeded; images already uploaded are removed again on failure.
    """
    _require(fullName=form.full_name, email=form.email, username=form.username, password=form.password)
    _check_profile_fields(form.full_name, form.username, form.email)
    _check_password(form.password)

    existing = await users.find_by_username_or_email(session, username=form.username, email=form.email)
    if existing is not None:
        raise ConflictError("User with email or username already exists")

    if avatar_path is None:
        raise ValidationError("Avatar file is required")

    uploaded: list[media.MediaAsset] = []
    try:
        avatar = await media.upload(avatar_path)
        uploaded.append(avatar)
        cover_url = None
        if cover_image_path is not None:
            cover = await media.upload(cover_image_path)
            uploaded.append(cover)
            cover_url = cover.url
        user = await users.create(
            session,
            username=form.username,
            email=form.email,
            full_name=form.full_name,
            password=form.password,
            avatar_url=avatar.url,
            cover_image_url=cover_url,
        )
    except Exception:
        await _discard(uploaded)
        raise
    logger.info("Registered user %s", user.id)
    return user


async def login(session: AsyncSession, body: LoginBody) -> LoginResult:
    if _blank(body.username) and _blank(body.email):
        raise ValidationError("Username or email is required")
    if _blank(body.password):
        raise ValidationError("Password is required")

    user = await users.find_by_username_or_email(session, username=body.username, email=body.email)
    if user is None:
        raise NotFoundError("User does not exist")
    if not await users.verify_password(user, body.password):
        logger.warning("Failed login for user %s", user.id)
        raise Unauthorized("Invalid user credentials")

    issued = await tokens.issue_pair(session, user.id)
    logger.info("User %s logged in", user.id)
    return LoginResult(user=user, issued=issued)


async def logout(session: AsyncSession, user: User) -> None:
    await tokens.revoke(session, user.id)
    logger.info("User %s logged out", user.id)


async def refresh(session: AsyncSession, presented: str | None) -> tokens.IssuedTokens:
    if _blank(presented):
        raise Unauthorized("Unauthorized request")
    return await tokens.rotate(session, presented.strip())


async def change_password(session: AsyncSession, user: User, body: ChangePasswordBody) -> None:
    _require(oldPassword=body.old_password, newPassword=body.new_password)
    _check_password(body.new_password, field="newPassword")
    if not await users.verify_password(user, body.old_password):
        raise Unauthorized("Invalid old password")
    user.set_password(body.new_password)
    await users.save(session, user)
    logger.info("User %s changed password", user.id)


async def get_user(session: AsyncSession, user_id: str) -> User:
    user = await users.get_by_id(session, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def list_users(session: AsyncSession) -> list[User]:
    return await users.list_users(session)


async def delete_user(session: AsyncSession, user_id: str) -> None:
    if not await users.delete_by_id(session, user_id):
        raise NotFoundError("User not found")
    logger.info("Deleted user %s", user_id)


async def update_account(session: AsyncSession, user: User, body: UpdateAccountBody) -> User:
    _require(fullName=body.full_name, username=body.username, email=body.email)
    _check_profile_fields(body.full_name, body.username, body.email)

    other = await users.find_by_username_or_email(
        session, username=body.username, email=body.email, exclude_id=user.id
    )
    if other is not None:
        raise ConflictError("User with email or username already exists")

    user.full_name = body.full_name.strip()
    user.username = users.normalize_username(body.username)
    user.email = users.normalize_email(body.email)
    return await users.save(session, user)


async def update_avatar(session: AsyncSession, user: User, avatar_path: Path | None) -> User:
    if avatar_path is None:
        raise ValidationError("Avatar file is missing")
    asset = await media.upload(avatar_path)
    user.avatar_url = asset.url
    return await _save_with_asset(session, user, asset)


async def update_cover_image(session: AsyncSession, user: User, cover_image_path: Path | None) -> User:
    if cover_image_path is None:
        raise ValidationError("Cover image file is missing")
    asset = await media.upload(cover_image_path)
    user.cover_image_url = asset.url
    return await _save_with_asset(session, user, asset)


async def _save_with_asset(session: AsyncSession, user: User, asset: media.MediaAsset) -> User:
    try:
        return await users.save(session, user)
    except Exception:
        await _discard([asset])
        raise


async def _discard(assets: list[media.MediaAsset]) -> None:
    for asset in assets:
        await media.delete(asset.key)
