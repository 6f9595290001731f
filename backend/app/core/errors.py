"""Error kinds raised by account operations and the single boundary that renders them."""

from __future__ import annotations

import enum
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class ApiError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, errors: list[Any] | None = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code


class ValidationError(ApiError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"


class Unauthorized(ApiError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Unauthorized request"


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class ConflictError(ApiError):
    kind = ErrorKind.CONFLICT
    default_message = "Already exists"


class InternalError(ApiError):
    kind = ErrorKind.INTERNAL


class UploadError(InternalError):
    default_message = "Media upload failed"


def error_body(status_code: int, message: str, errors: list[Any] | None = None) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "message": message,
        "error": errors or [],
        "data": None,
        "success": False,
    }


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.kind is ErrorKind.INTERNAL:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message, exc.errors))


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body(400, "Invalid request", errors))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body(500, "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
