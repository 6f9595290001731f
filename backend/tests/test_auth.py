"""Tests for account endpoints: register, login, logout, refresh-token, change-password."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from app.core.errors import UploadError
from app.services import media, users

# 1x1 PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)

REGISTER_FORM = {"fullName": "Alice A", "username": "alice", "email": "a@x.com", "password": "secret1"}


def _set_cookies(resp) -> str:
    return " ".join(resp.headers.get_list("set-cookie"))


async def _register(client: AsyncClient, form: dict | None = None, with_avatar: bool = True):
    files = {"avatar": ("me.png", PNG_BYTES, "image/png")} if with_avatar else None
    return await client.post("/api/v1/users/register", data=form or REGISTER_FORM, files=files)


@pytest.mark.asyncio
async def test_register(client: AsyncClient, mock_upload):
    resp = await _register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["statusCode"] == 201
    assert body["success"] is True
    data = body["data"]
    assert data["username"] == "alice"
    assert data["email"] == "a@x.com"
    assert data["fullName"] == "Alice A"
    assert data["avatarUrl"].startswith("https://media.test/")
    assert data["coverImageUrl"] is None
    assert "password" not in data and "passwordHash" not in data
    assert "refreshToken" not in data
    assert mock_upload.await_count == 1


@pytest.mark.asyncio
async def test_register_stores_hash_not_plaintext(client: AsyncClient, session_maker, mock_upload):
    await _register(client)
    async with session_maker() as session:
        user = await users.find_by_username_or_email(session, username="alice")
    assert user.password_hash != "secret1"
    assert await users.verify_password(user, "secret1")


@pytest.mark.asyncio
async def test_register_with_cover_image(client: AsyncClient, mock_upload):
    resp = await client.post(
        "/api/v1/users/register",
        data=REGISTER_FORM,
        files={
            "avatar": ("me.png", PNG_BYTES, "image/png"),
            "coverImage": ("cover.png", PNG_BYTES, "image/png"),
        },
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["coverImageUrl"].startswith("https://media.test/")
    assert mock_upload.await_count == 2


@pytest.mark.asyncio
async def test_register_blank_field(client: AsyncClient, mock_upload):
    resp = await _register(client, {**REGISTER_FORM, "fullName": "   "})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["data"] is None
    assert "fullName is required" in body["error"]
    mock_upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_missing_avatar(client: AsyncClient, session_maker, mock_upload):
    resp = await _register(client, with_avatar=False)
    assert resp.status_code == 400
    assert "Avatar" in resp.json()["message"]
    mock_upload.assert_not_awaited()
    async with session_maker() as session:
        assert await users.list_users(session) == []


@pytest.mark.asyncio
async def test_register_rejects_non_image(client: AsyncClient, mock_upload):
    resp = await client.post(
        "/api/v1/users/register",
        data=REGISTER_FORM,
        files={"avatar": ("me.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 400
    mock_upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_duplicate_username_case_insensitive(client: AsyncClient, session_maker, mock_upload):
    assert (await _register(client)).status_code == 201
    resp = await _register(client, {**REGISTER_FORM, "username": "ALICE", "email": "other@x.com"})
    assert resp.status_code == 409
    assert resp.json()["success"] is False
    async with session_maker() as session:
        assert len(await users.list_users(session)) == 1
    assert mock_upload.await_count == 1


@pytest.mark.asyncio
async def test_register_upload_failure_creates_nothing(client: AsyncClient, session_maker, mock_upload):
    mock_upload.side_effect = UploadError()
    resp = await _register(client)
    assert resp.status_code == 500
    assert resp.json()["message"] == "Media upload failed"
    async with session_maker() as session:
        assert await users.list_users(session) == []


@pytest.mark.asyncio
async def test_register_cover_failure_removes_uploaded_avatar(
    client: AsyncClient, session_maker, mock_upload, mock_delete
):
    avatar = media.MediaAsset(url="https://media.test/users/a.png", key="users/a.png")
    mock_upload.side_effect = [avatar, UploadError()]
    resp = await client.post(
        "/api/v1/users/register",
        data=REGISTER_FORM,
        files={
            "avatar": ("me.png", PNG_BYTES, "image/png"),
            "coverImage": ("cover.png", PNG_BYTES, "image/png"),
        },
    )
    assert resp.status_code == 500
    mock_delete.assert_awaited_once_with("users/a.png")
    async with session_maker() as session:
        assert await users.list_users(session) == []


@pytest.mark.asyncio
async def test_register_storage_conflict_removes_uploads(
    client: AsyncClient, session_maker, mock_upload, mock_delete
):
    async with session_maker() as session:
        await users.create(
            session,
            username="alice",
            email="other@x.com",
            full_name="Existing",
            password="secret1",
            avatar_url="https://media.test/old.png",
        )
    # a concurrent registration slipped past the early uniqueness check
    with patch("app.services.users.find_by_username_or_email", AsyncMock(return_value=None)):
        resp = await _register(client)
    assert resp.status_code == 409
    mock_delete.assert_awaited_once_with("users/1.png")
    async with session_maker() as session:
        assert [u.full_name for u in await users.list_users(session)] == ["Existing"]


@pytest.mark.asyncio
async def test_login(client: AsyncClient, test_user):
    resp = await client.post("/api/v1/users/login", json={"email": "test@test.com", "password": "password123"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["email"] == "test@test.com"
    assert data["accessToken"]
    assert data["refreshToken"]
    cookies = _set_cookies(resp)
    assert "accessToken=" in cookies
    assert "refreshToken=" in cookies
    assert "HttpOnly" in cookies
    assert "Secure" in cookies


@pytest.mark.asyncio
async def test_login_by_username_any_case(client: AsyncClient, test_user, login):
    data = await login(username="TESTER")
    assert data["user"]["username"] == "tester"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    resp = await client.post("/api/v1/users/login", json={"username": "tester", "password": "wrong"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_unknown_user(client: AsyncClient, test_user):
    resp = await client.post("/api/v1/users/login", json={"username": "nobody", "password": "password123"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_login_missing_fields(client: AsyncClient):
    resp = await client.post("/api/v1/users/login", json={"password": "password123"})
    assert resp.status_code == 400
    resp = await client.post("/api/v1/users/login", json={"username": "tester"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_logout_clears_cookies_and_revokes_refresh(client: AsyncClient, test_user, login):
    data = await login()
    headers = {"Authorization": f"Bearer {data['accessToken']}"}
    resp = await client.post("/api/v1/users/logout", headers=headers)
    assert resp.status_code == 200
    cookies = _set_cookies(resp)
    assert "accessToken=" in cookies and "refreshToken=" in cookies
    assert "Max-Age=0" in cookies

    client.cookies.clear()
    resp = await client.post("/api/v1/users/refresh-token", json={"refreshToken": data["refreshToken"]})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_logout_requires_auth(client: AsyncClient):
    resp = await client.post("/api/v1/users/logout")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_tokens(client: AsyncClient, test_user, login):
    data = await login()
    client.cookies.clear()
    resp = await client.post("/api/v1/users/refresh-token", json={"refreshToken": data["refreshToken"]})
    assert resp.status_code == 200
    new = resp.json()["data"]
    assert new["refreshToken"] != data["refreshToken"]
    assert "refreshToken=" in _set_cookies(resp)

    client.cookies.clear()
    stale = await client.post("/api/v1/users/refresh-token", json={"refreshToken": data["refreshToken"]})
    assert stale.status_code == 401

    client.cookies.clear()
    fresh = await client.post("/api/v1/users/refresh-token", json={"refreshToken": new["refreshToken"]})
    assert fresh.status_code == 200


@pytest.mark.asyncio
async def test_refresh_missing_token(client: AsyncClient):
    resp = await client.post("/api/v1/users/refresh-token")
    assert resp.status_code == 401
    resp = await client.post("/api/v1/users/refresh-token", json={"refreshToken": "  "})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_garbage_token(client: AsyncClient):
    resp = await client.post("/api/v1/users/refresh-token", json={"refreshToken": "garbage"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid refresh token"


@pytest.mark.asyncio
async def test_change_password(client: AsyncClient, test_user, auth_headers, login):
    resp = await client.put(
        "/api/v1/users/change-password",
        json={"oldPassword": "password123", "newPassword": "newpass456"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    bad = await client.post("/api/v1/users/login", json={"username": "tester", "password": "password123"})
    assert bad.status_code == 401
    await login(password="newpass456")


@pytest.mark.asyncio
async def test_change_password_wrong_old(client: AsyncClient, test_user, auth_headers):
    resp = await client.put(
        "/api/v1/users/change-password",
        json={"oldPassword": "nope", "newPassword": "newpass456"},
        headers=auth_headers,
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_change_password_blank(client: AsyncClient, test_user, auth_headers):
    resp = await client.put(
        "/api/v1/users/change-password",
        json={"oldPassword": "password123", "newPassword": ""},
        headers=auth_headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_full_session_scenario(client: AsyncClient, mock_upload, login):
    """Register, login, read profile, logout, then the old refresh token is refused."""
    reg = await _register(client)
    assert reg.status_code == 201
    assert "refreshToken" not in reg.json()["data"]

    data = await login(username="alice", password="secret1")
    headers = {"Authorization": f"Bearer {data['accessToken']}"}

    profile = await client.get("/api/v1/users/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["data"]["id"] == reg.json()["data"]["id"]
    assert profile.json()["data"]["username"] == "alice"

    out = await client.post("/api/v1/users/logout", headers=headers)
    assert out.status_code == 200

    client.cookies.clear()
    again = await client.post("/api/v1/users/refresh-token", json={"refreshToken": data["refreshToken"]})
    assert again.status_code == 401
