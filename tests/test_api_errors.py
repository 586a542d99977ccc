from __future__ import annotations

from inkwell.api.errors import (
    ApiErrorCode,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    RateLimitError,
    to_error_payload,
)


def test_to_error_payload_preserves_structured_detail() -> None:
    payload = to_error_payload(
        {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"},
        401,
    )

    assert payload == {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"}


def test_to_error_payload_normalizes_plain_string() -> None:
    payload = to_error_payload("boom", 500)

    assert payload == {"error_code": "HTTP_500", "message": "boom"}


def test_domain_errors_carry_status_code_and_envelope() -> None:
    cases = [
        (AuthenticationError(), 401, ApiErrorCode.AUTH_INVALID_CREDENTIALS),
        (AuthorizationError(), 403, ApiErrorCode.AUTH_FORBIDDEN),
        (NotFoundError("User not found"), 404, ApiErrorCode.RESOURCE_NOT_FOUND),
        (ConflictError(), 409, ApiErrorCode.RESOURCE_CONFLICT),
        (DatabaseError(), 500, ApiErrorCode.DATABASE_ERROR),
        (RateLimitError("slow down"), 429, ApiErrorCode.AUTH_RATE_LIMITED),
    ]

    for error, status_code, error_code in cases:
        assert error.status_code == status_code
        assert error.error_code == error_code
        assert error.detail == {"error_code": str(error_code), "message": error.message}
        assert str(error) == error.message


def test_authentication_error_accepts_specific_code() -> None:
    error = AuthenticationError("OTP has expired.", ApiErrorCode.AUTH_OTP_EXPIRED)

    assert to_error_payload(error.detail, error.status_code) == {
        "error_code": "AUTH_OTP_EXPIRED",
        "message": "OTP has expired.",
    }
