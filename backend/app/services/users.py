"""Credential store: the only code that reads and writes user records."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from starlette.concurrency import run_in_threadpool

from app.core.auth import hash_password, refresh_token_hash, verify_password as _check_password
from app.core.errors import ConflictError, InternalError
from app.models.user import User

logger = logging.getLogger(__name__)


def normalize_username(username: str) -> str:
    return username.strip().lower()


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_by_id(session: AsyncSession, user_id: str) -> User | None:
    r = await session.execute(select(User).where(User.id == str(user_id)))
    return r.scalar_one_or_none()


async def find_by_username_or_email(
    session: AsyncSession,
    username: str | None = None,
    email: str | None = None,
    exclude_id: str | None = None,
) -> User | None:
    """Match on either field; username and email are compared lower-cased."""
    conditions = []
    if username and username.strip():
        conditions.append(User.username == normalize_username(username))
    if email and email.strip():
        conditions.append(User.email == normalize_email(email))
    if not conditions:
        return None
    stmt = select(User).where(or_(*conditions))
    if exclude_id is not None:
        stmt = stmt.where(User.id != str(exclude_id))
    r = await session.execute(stmt.limit(1))
    return r.scalars().first()


async def list_users(session: AsyncSession) -> list[User]:
    r = await session.execute(select(User).order_by(User.created_at))
    return list(r.scalars().all())


async def save(session: AsyncSession, user: User) -> User:
    """Persist the user; a password set via set_password() is hashed first, otherwise the hash is untouched."""
    pending = user.take_pending_password()
    if pending is not None:
        user.password_hash = await run_in_threadpool(hash_password, pending)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("User save rejected by unique constraint: %s", e.orig)
        raise ConflictError("User with email or username already exists") from e
    return user


async def create(
    session: AsyncSession,
    *,
    username: str,
    email: str,
    full_name: str,
    password: str,
    avatar_url: str,
    cover_image_url: str | None = None,
) -> User:
    """Create a user. The unique indexes on username and email are the source of truth for duplicates."""
    user = User(
        username=normalize_username(username),
        email=normalize_email(email),
        full_name=full_name.strip(),
        avatar_url=avatar_url,
        cover_image_url=cover_image_url,
        watch_history=[],
        refresh_token_hash=None,
    )
    user.set_password(password)
    return await save(session, user)


async def verify_password(user: User, plaintext: str) -> bool:
    if not user.password_hash:
        return False
    return await run_in_threadpool(_check_password, plaintext, user.password_hash)


def refresh_token_matches(user: User, token: str) -> bool:
    return user.refresh_token_hash is not None and user.refresh_token_hash == refresh_token_hash(token)


async def set_refresh_token(session: AsyncSession, user_id: str, token: str | None) -> None:
    """Unconditionally replace (or clear, with None) the stored refresh token. Only its digest is kept."""
    digest = refresh_token_hash(token) if token is not None else None
    await session.execute(
        update(User)
        .where(User.id == str(user_id))
        .values(refresh_token_hash=digest)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    _sync_loaded(session, user_id, refresh_token_hash=digest)


async def swap_refresh_token(session: AsyncSession, user_id: str, expected: str, new: str) -> bool:
    """Compare-and-swap the stored refresh token. False when another rotation or a logout won."""
    digest = refresh_token_hash(new)
    r = await session.execute(
        update(User)
        .where(User.id == str(user_id), User.refresh_token_hash == refresh_token_hash(expected))
        .values(refresh_token_hash=digest)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if r.rowcount != 1:
        return False
    _sync_loaded(session, user_id, refresh_token_hash=digest)
    return True


def _sync_loaded(session: AsyncSession, user_id: str, **values: Any) -> None:
    """Keep an already loaded instance in step with a bulk UPDATE."""
    for obj in list(session.identity_map.values()):
        if isinstance(obj, User) and obj.id == str(user_id):
            for key, value in values.items():
                set_committed_value(obj, key, value)


async def delete_by_id(session: AsyncSession, user_id: str) -> bool:
    try:
        r = await session.execute(delete(User).where(User.id == str(user_id)))
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Delete user %s failed", user_id)
        raise InternalError("Could not delete user") from e
    return r.rowcount == 1
