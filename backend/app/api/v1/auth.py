"""Account endpoints: register, login, logout, refresh-token, change-password."""

from typing import Annotated

from fastapi import APIRouter, Body, File, Form, Request, Response, UploadFile

from app.api.deps import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, CurrentUser, DbSession
from app.config import settings
from app.schemas.response import ApiResponse
from app.schemas.user import (
    ChangePasswordBody,
    LoginBody,
    LoginData,
    RefreshBody,
    RegisterForm,
    TokenPair,
    UserOut,
)
from app.services import accounts, media
from app.services.tokens import IssuedTokens

router = APIRouter(prefix="/users", tags=["auth"])


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": "/",
    }


def _set_token_cookies(response: Response, issued: IssuedTokens) -> None:
    options = _cookie_options()
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        issued.access_token,
        max_age=settings.access_token_expire_minutes * 60,
        **options,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        issued.refresh_token,
        max_age=settings.refresh_token_expire_days * 86400,
        **options,
    )


def _clear_token_cookies(response: Response) -> None:
    options = _cookie_options()
    response.delete_cookie(ACCESS_TOKEN_COOKIE, **options)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **options)


@router.post(
    "/register",
    status_code=201,
    response_model=ApiResponse[UserOut],
    summary="Register a new user",
    responses={
        400: {"description": "Missing or invalid fields, or avatar missing"},
        409: {"description": "Username or email already taken"},
        500: {"description": "Media upload or database failure"},
    },
)
async def register(
    session: DbSession,
    full_name: Annotated[str | None, Form(alias="fullName")] = None,
    username: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    avatar: Annotated[UploadFile | None, File(description="Profile image (required)")] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage", description="Cover image")] = None,
) -> ApiResponse[UserOut]:
    form = RegisterForm(full_name=full_name, username=username, email=email, password=password)
    async with media.staged(avatar) as avatar_path, media.staged(cover_image) as cover_path:
        user = await accounts.register(session, form, avatar_path, cover_path)
    return ApiResponse[UserOut].ok(UserOut.model_validate(user), "User registered successfully", status_code=201)


@router.post(
    "/login",
    response_model=ApiResponse[LoginData],
    summary="Login with username or email and password",
    responses={
        400: {"description": "Missing credentials"},
        401: {"description": "Wrong password"},
        404: {"description": "User does not exist"},
    },
)
async def login(session: DbSession, body: LoginBody, response: Response) -> ApiResponse[LoginData]:
    result = await accounts.login(session, body)
    _set_token_cookies(response, result.issued)
    data = LoginData(
        user=UserOut.model_validate(result.user),
        access_token=result.issued.access_token,
        refresh_token=result.issued.refresh_token,
    )
    return ApiResponse[LoginData].ok(data, "User logged in successfully")


@router.post(
    "/logout",
    response_model=ApiResponse[dict],
    summary="Log out and revoke the stored refresh token",
    responses={401: {"description": "Not authenticated"}},
)
async def logout(session: DbSession, user: CurrentUser, response: Response) -> ApiResponse[dict]:
    await accounts.logout(session, user)
    _clear_token_cookies(response)
    return ApiResponse[dict].ok({}, "User logged out successfully")


@router.post(
    "/refresh-token",
    response_model=ApiResponse[TokenPair],
    summary="Exchange a refresh token for a new access/refresh pair",
    responses={401: {"description": "Refresh token missing, invalid, expired or already used"}},
)
async def refresh_token(
    session: DbSession,
    request: Request,
    response: Response,
    body: Annotated[RefreshBody | None, Body()] = None,
) -> ApiResponse[TokenPair]:
    """Cookie first, then the refreshToken body field. Rotation: the presented token stops working."""
    presented = request.cookies.get(REFRESH_TOKEN_COOKIE) or (body.refresh_token if body else None)
    issued = await accounts.refresh(session, presented)
    _set_token_cookies(response, issued)
    data = TokenPair(access_token=issued.access_token, refresh_token=issued.refresh_token)
    return ApiResponse[TokenPair].ok(data, "Access token refreshed")


@router.put(
    "/change-password",
    response_model=ApiResponse[dict],
    summary="Change password",
    responses={
        400: {"description": "Missing or invalid fields"},
        401: {"description": "Not authenticated or old password wrong"},
    },
)
async def change_password(session: DbSession, user: CurrentUser, body: ChangePasswordBody) -> ApiResponse[dict]:
    await accounts.change_password(session, user, body)
    return ApiResponse[dict].ok({}, "Password changed successfully")
