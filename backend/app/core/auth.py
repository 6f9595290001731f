"""Password hashing and JWT creation/verification for access and refresh tokens."""

import hashlib
import secrets
from datetime import datetime, timezone, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from app.config import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def refresh_token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit); no passlib re-encoding."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def _get_access_signing_key_and_algorithm() -> tuple[str, str]:
    """Return (key, algorithm) for signing access tokens."""
    if settings.use_rs256:
        return settings.jwt_private_key.strip(), "RS256"
    return settings.access_token_secret, settings.jwt_algorithm


def _get_access_verification_key_and_algorithms() -> tuple[str, list[str]]:
    """Return (key, algorithms) for verifying access tokens."""
    if settings.use_rs256:
        return settings.jwt_public_key.strip(), ["RS256"]
    return settings.access_token_secret, [settings.jwt_algorithm]


def _encode(payload: dict[str, Any], key: str, algorithm: str) -> str:
    result = jwt.encode(payload, key, algorithm=algorithm)
    return result if isinstance(result, str) else result.decode("utf-8")


def create_access_token(user_id: str, username: str, email: str, full_name: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "id": str(user_id),
        "username": username,
        "email": email,
        "fullName": full_name,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    key, algorithm = _get_access_signing_key_and_algorithm()
    return _encode(payload, key, algorithm)


def create_refresh_token(user_id: str) -> str:
    """Refresh tokens carry only the user id; jti keeps tokens minted in the same second distinct."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "id": str(user_id),
        "type": REFRESH_TOKEN_TYPE,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": now + timedelta(days=settings.refresh_token_expire_days),
    }
    return _encode(payload, settings.refresh_token_secret, settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify an access token. Raises JWTError on bad signature, expiry or wrong type."""
    key, algorithms = _get_access_verification_key_and_algorithms()
    payload = jwt.decode(token, key, algorithms=algorithms)
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError("Not an access token")
    return payload


def decode_refresh_token(token: str) -> dict[str, Any]:
    """Decode and verify a refresh token signature and expiry (not its stored value)."""
    payload = jwt.decode(token, settings.refresh_token_secret, algorithms=[settings.jwt_algorithm])
    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise JWTError("Not a refresh token")
    return payload
