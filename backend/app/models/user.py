"""User account record: credentials, profile media and the current session token."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str] = mapped_column(Text, nullable=False)
    cover_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    watch_history: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # SHA-256 of the single live refresh token; clearing or replacing it revokes every outstanding one.
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def set_password(self, plaintext: str) -> None:
        """Record a new password; the credential store hashes it on the next save."""
        self._pending_password = plaintext

    @property
    def password_changed(self) -> bool:
        return getattr(self, "_pending_password", None) is not None

    def take_pending_password(self) -> str | None:
        pending = getattr(self, "_pending_password", None)
        self._pending_password = None
        return pending
