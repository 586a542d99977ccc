"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_ACCOUNT_INACTIVE = "AUTH_ACCOUNT_INACTIVE"
    AUTH_OTP_INVALID = "AUTH_OTP_INVALID"
    AUTH_OTP_EXPIRED = "AUTH_OTP_EXPIRED"
    AUTH_EMAIL_DELIVERY_FAILED = "AUTH_EMAIL_DELIVERY_FAILED"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )
        self.error_code = error_code
        self.message = message

    def __str__(self) -> str:
        return self.message


class AuthenticationError(ApiError):
    """Bad credentials, OTP or token. Safe to show to the end user."""

    def __init__(
        self,
        message: str = "Authentication required",
        error_code: ApiErrorCode = ApiErrorCode.AUTH_INVALID_CREDENTIALS,
    ) -> None:
        super().__init__(status_code=401, error_code=error_code, message=message)


class AuthorizationError(ApiError):
    """Caller is authenticated but lacks the required role."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(
            status_code=403, error_code=ApiErrorCode.AUTH_FORBIDDEN, message=message
        )


class NotFoundError(ApiError):
    """Requested resource does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(
            status_code=404, error_code=ApiErrorCode.RESOURCE_NOT_FOUND, message=message
        )


class ConflictError(ApiError):
    """Uniqueness or state conflict reported by the store or the auth flow."""

    def __init__(self, message: str = "Record already exists") -> None:
        super().__init__(
            status_code=409, error_code=ApiErrorCode.RESOURCE_CONFLICT, message=message
        )


class DatabaseError(ApiError):
    """Storage failure with the driver details stripped."""

    def __init__(self, message: str = "Database operation failed") -> None:
        super().__init__(
            status_code=500, error_code=ApiErrorCode.DATABASE_ERROR, message=message
        )


class RateLimitError(ApiError):
    """Too many attempts for the same principal."""

    def __init__(self, message: str) -> None:
        super().__init__(
            status_code=429, error_code=ApiErrorCode.AUTH_RATE_LIMITED, message=message
        )


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
