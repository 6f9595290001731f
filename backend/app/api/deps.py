"""FastAPI dependencies: current user from the access token (cookie first, then Bearer header)."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Unauthorized
from app.db.session import get_db
from app.models.user import User
from app.schemas.user import UserOut
from app.services import tokens, users

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def extract_access_token(request: Request) -> str | None:
    """The accessToken cookie wins over an Authorization: Bearer header."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


async def get_current_user(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Return the ORM user for write paths; request.state.user only gets the public profile."""
    claims = tokens.verify_access_token(extract_access_token(request))
    user = await users.get_by_id(session, claims["id"])
    if user is None:
        raise Unauthorized("Unauthorized - User not found")
    request.state.user = UserOut.model_validate(user)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
