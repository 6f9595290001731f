"""Pytest configuration and shared fixtures for API tests."""

import os
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test config before app imports so settings/engine use it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("UPLOAD_TEMP_DIR", "/tmp/user-accounts-test-uploads")

from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.services import media, users
from app.services.tokens import mint_access_token

pytest_plugins = ["pytest_asyncio"]


@pytest_asyncio.fixture
async def session_maker():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_maker):
    """Yield AsyncClient with get_db bound to the per-test database."""

    async def _get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def mock_delete():
    with patch("app.services.media.delete", new=AsyncMock()) as m:
        yield m


@pytest.fixture
def mock_upload(mock_delete):
    """Media host stub: returns a numbered URL per upload, no network."""
    counter = {"n": 0}

    async def _upload(local_path):
        counter["n"] += 1
        return media.MediaAsset(url=f"https://media.test/users/{counter['n']}.png", key=f"users/{counter['n']}.png")

    with patch("app.services.media.upload", new=AsyncMock(side_effect=_upload)) as m:
        yield m


@pytest_asyncio.fixture
async def test_user(session_maker):
    """Create a user via the credential store and return (user, access_token)."""
    async with session_maker() as session:
        user = await users.create(
            session,
            username="tester",
            email="test@test.com",
            full_name="Test User",
            password="password123",
            avatar_url="https://media.test/users/avatar.png",
        )
        return user, mint_access_token(user)


@pytest.fixture
def auth_headers(test_user):
    """Return dict of Authorization header for test_user."""
    _, token = test_user
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(client):
    """Return an async helper that logs in and returns the response data (user + tokens)."""

    async def _login(password: str = "password123", **identity) -> dict:
        identity = identity or {"username": "tester"}
        resp = await client.post("/api/v1/users/login", json={**identity, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    return _login
