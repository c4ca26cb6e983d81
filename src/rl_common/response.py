"""Unified API response wrapper.

Success:
{
    "success": true,
    "data": { ... }
}

Error:
{
    "success": false,
    "error": {"message": "...", "code": "RATE_LIMIT_EXCEEDED"}
}
"""

from typing import Any

from pydantic import BaseModel


class ErrorBody(BaseModel):
    message: str
    code: str


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody


def success_response(data: Any = None) -> ApiResponse:
    return ApiResponse(success=True, data=data)


def error_response(code: str, message: str) -> ErrorResponse:
    return ErrorResponse(error=ErrorBody(message=message, code=code))
