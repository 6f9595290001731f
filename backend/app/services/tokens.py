"""Token service: issues access/refresh pairs and verifies them against the credential store.

Access tokens are stateless: signature and expiry are the whole check, so a leaked
access token stays valid until it expires. Refresh tokens are also checked against
the single value stored on the user row (kept as a SHA-256 digest, never the raw
token). Clearing that column (logout) or replacing it (login elsewhere,
rotation) revokes every other refresh token for the user, even ones whose signature
has not expired. That stored value is the only revocation mechanism.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from jose import ExpiredSignatureError, JOSEError, JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
)
from app.core.errors import InternalError, NotFoundError, Unauthorized
from app.models.user import User
from app.services import users

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str


def mint_access_token(user: User) -> str:
    return create_access_token(user.id, user.username, user.email, user.full_name)


def mint_refresh_token(user: User) -> str:
    return create_refresh_token(user.id)


async def issue_pair(session: AsyncSession, user_id: str) -> IssuedTokens:
    """Mint both tokens and store the refresh token; nothing is returned unless the store write succeeded."""
    user = await users.get_by_id(session, user_id)
    if user is None:
        raise NotFoundError("User does not exist")
    try:
        access = mint_access_token(user)
        refresh = mint_refresh_token(user)
        await users.set_refresh_token(session, user.id, refresh)
    except (JOSEError, SQLAlchemyError) as e:
        await session.rollback()
        logger.exception("Issuing tokens for user %s failed", user_id)
        raise InternalError("Something went wrong while generating access and refresh tokens") from e
    return IssuedTokens(access_token=access, refresh_token=refresh)


def verify_access_token(token: str | None) -> dict[str, Any]:
    if not token:
        raise Unauthorized("Unauthorized - No token provided")
    try:
        claims = decode_access_token(token)
    except ExpiredSignatureError:
        raise Unauthorized("Unauthorized - Access token expired") from None
    except JWTError:
        raise Unauthorized("Unauthorized - Invalid token") from None
    if not claims.get("id"):
        raise Unauthorized("Unauthorized - Invalid token")
    return claims


async def verify_refresh_token(session: AsyncSession, token: str | None) -> User:
    """Verify signature and expiry, then require an exact match with the stored refresh token."""
    if not token:
        raise Unauthorized("Unauthorized request")
    try:
        claims = decode_refresh_token(token)
    except ExpiredSignatureError:
        raise Unauthorized("Refresh token expired") from None
    except JWTError:
        raise Unauthorized("Invalid refresh token") from None
    user = await users.get_by_id(session, claims.get("id") or "")
    if user is None:
        raise Unauthorized("Invalid refresh token")
    # No stored digest means logged out; any other mismatch means rotated or replaced by a newer login.
    if not users.refresh_token_matches(user, token):
        raise Unauthorized("Invalid refresh token")
    return user


async def rotate(session: AsyncSession, presented: str | None) -> IssuedTokens:
    """Exchange a valid refresh token for a new pair; the presented token stops working."""
    user = await verify_refresh_token(session, presented)
    user_id = user.id
    try:
        access = mint_access_token(user)
        refresh = mint_refresh_token(user)
        swapped = await users.swap_refresh_token(session, user_id, presented, refresh)
    except (JOSEError, SQLAlchemyError) as e:
        await session.rollback()
        logger.exception("Rotating refresh token for user %s failed", user_id)
        raise InternalError("Something went wrong while generating access and refresh tokens") from e
    if not swapped:
        logger.warning("Refresh token for user %s was rotated concurrently", user_id)
        raise Unauthorized("Refresh token already used")
    return IssuedTokens(access_token=access, refresh_token=refresh)


async def revoke(session: AsyncSession, user_id: str) -> None:
    await users.set_refresh_token(session, user_id, None)
