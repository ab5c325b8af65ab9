"""Error types and response envelopes shared by the store and the API."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

from fastapi import status


class ErrorCode(StrEnum):
    """Machine-readable error codes returned in error envelopes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNAUTHORIZED: "Authentication required",
    ErrorCode.FORBIDDEN: "You do not have permission to perform this action",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.CONFLICT: "Resource is still referenced",
    ErrorCode.BAD_REQUEST: "Invalid request",
    ErrorCode.VALIDATION_ERROR: "Validation failed",
    ErrorCode.INVALID_REFERENCE: "Invalid reference",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Rate limit exceeded",
    ErrorCode.FILE_TOO_LARGE: "File size exceeds maximum allowed",
    ErrorCode.INVALID_FILE_TYPE: "Invalid file type",
    ErrorCode.STORAGE_UNAVAILABLE: "Storage backend unavailable",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}


@dataclass(frozen=True)
class ErrorDetail:
    """Pinpoints the offending input field of a failed request."""

    message: str
    field: str | None = None


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        details: list[ErrorDetail] | None = None,
    ) -> None:
        self.message = message or DEFAULT_MESSAGES[self.code]
        super().__init__(self.message)
        if details is None and field is not None:
            details = [ErrorDetail(message=self.message, field=field)]
        self.details = details or []

    @property
    def field(self) -> str | None:
        """Return the first offending field, if any."""
        return self.details[0].field if self.details else None


class ValidationError(AppError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidReference(AppError):
    """A foreign id points at a missing, deleted or out-of-scope row."""

    code = ErrorCode.INVALID_REFERENCE
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFound(AppError):
    code = ErrorCode.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class Unauthorized(AppError):
    code = ErrorCode.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AppError):
    code = ErrorCode.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN


class ReferentialConflict(AppError):
    """A row cannot be removed while other rows still reference it."""

    code = ErrorCode.CONFLICT
    status_code = status.HTTP_409_CONFLICT


class FileTooLarge(AppError):
    code = ErrorCode.FILE_TOO_LARGE
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class InvalidFileType(AppError):
    code = ErrorCode.INVALID_FILE_TYPE
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class StorageUnavailable(AppError):
    """The relational store could not be reached; never retried internally."""

    code = ErrorCode.STORAGE_UNAVAILABLE
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RateLimitExceeded(AppError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str | None = None, *, reset_time: int, remaining: int = 0) -> None:
        super().__init__(message)
        self.reset_time = reset_time
        self.remaining = remaining


def error_response(
    error: AppError | ErrorCode,
    message: str | None = None,
    details: list[ErrorDetail] | None = None,
) -> dict[str, Any]:
    """Build the standard error envelope for an error or a bare error code."""
    if isinstance(error, AppError):
        code, message, details = error.code, error.message, error.details
    else:
        code = error
        message = message or DEFAULT_MESSAGES.get(code, "An error occurred")
        details = details or []
    return {
        "success": False,
        "error": {
            "code": code.value,
            "message": message,
            "details": [asdict(detail) for detail in details],
        },
    }
