"""Pydantic schemas for the user account API. Wire names are camelCase."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserOut(CamelModel):
    """Public profile; never carries password_hash or refresh_token_hash."""

    id: str
    username: str
    email: str
    full_name: str
    avatar_url: str
    cover_image_url: str | None = None
    watch_history: list[str] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RegisterForm(CamelModel):
    """Text fields of the multipart registration form."""

    full_name: str | None = None
    username: str | None = None
    email: str | None = None
    password: str | None = None


class LoginBody(CamelModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None


class RefreshBody(CamelModel):
    refresh_token: str | None = None


class ChangePasswordBody(CamelModel):
    old_password: str | None = None
    new_password: str | None = None


class UpdateAccountBody(CamelModel):
    full_name: str | None = None
    username: str | None = None
    email: str | None = None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class LoginData(TokenPair):
    user: UserOut
