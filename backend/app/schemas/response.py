"""Success envelope shared by every endpoint."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """{statusCode, message, data, success}; success is derived from the status code."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(200, alias="statusCode")
    message: str = "Operation successful"
    data: T | None = None
    success: bool = True

    @classmethod
    def ok(cls, data: T | None = None, message: str = "Operation successful", status_code: int = 200) -> "ApiResponse[T]":
        return cls(status_code=status_code, message=message, data=data, success=status_code < 400)
