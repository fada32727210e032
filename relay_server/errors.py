"""
Error codes and result types shared by the relay endpoints.
Parsing and verification return Ok/Err; routers turn Err into a JSON error response.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from fastapi.responses import JSONResponse

T = TypeVar("T")


class ErrorCode(str, Enum):
    INVALID_CLIENT = "INVALID_CLIENT"
    INVALID_REDIRECT_URI = "INVALID_REDIRECT_URI"
    INVALID_STATE = "INVALID_STATE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_CODE = "INVALID_CODE"
    INVALID_GRANT = "INVALID_GRANT"
    UNSUPPORTED_GRANT_TYPE = "UNSUPPORTED_GRANT_TYPE"
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"
    INVALID_USER = "INVALID_USER"
    UNAUTHORIZED = "UNAUTHORIZED"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status_code(self) -> int:
        return _STATUS.get(self, 400)

    @property
    def default_message(self) -> str:
        return _MESSAGES[self]


_STATUS = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.METHOD_NOT_ALLOWED: 405,
    ErrorCode.INTERNAL_ERROR: 500,
}

_MESSAGES = {
    ErrorCode.INVALID_CLIENT: "Invalid client credentials.",
    ErrorCode.INVALID_REDIRECT_URI: "redirect_uri is not allowed.",
    ErrorCode.INVALID_STATE: "Invalid or expired state.",
    ErrorCode.INVALID_REQUEST: "Malformed or incomplete request.",
    ErrorCode.INVALID_CODE: "Invalid or expired code.",
    ErrorCode.INVALID_GRANT: "Invalid or expired refresh token.",
    ErrorCode.UNSUPPORTED_GRANT_TYPE: "Only authorization_code and refresh_token are supported.",
    ErrorCode.TOKEN_EXCHANGE_FAILED: "Failed to obtain GitHub access token.",
    ErrorCode.INVALID_USER: "Failed to retrieve GitHub user information.",
    ErrorCode.UNAUTHORIZED: "Missing or invalid bearer token.",
    ErrorCode.METHOD_NOT_ALLOWED: "Method not allowed.",
    ErrorCode.INTERNAL_ERROR: "Internal server error.",
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    code: ErrorCode
    message: str | None = None

    @property
    def description(self) -> str:
        return self.message or self.code.default_message


Result = Union[Ok[T], Err]


def error_response(
    code: ErrorCode,
    message: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Stable error body: {"code": ..., "message": ...}."""
    body: dict[str, Any] = {"code": code.value, "message": message or code.default_message}
    return JSONResponse(status_code=code.status_code, content=body, headers=headers)


def err_response(err: Err, headers: dict[str, str] | None = None) -> JSONResponse:
    return error_response(err.code, err.description, headers=headers)
