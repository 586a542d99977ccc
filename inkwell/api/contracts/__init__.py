"""Public API response contracts."""

from inkwell.api.contracts.models import (
    ApiErrorResponse,
    AuthSessionResponse,
    CleanupResponse,
    HealthResponse,
    MessageResponse,
    RegisterResponse,
    StatusResponse,
    TokenPairResponse,
    UserListResponse,
    UserProfileResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthSessionResponse",
    "CleanupResponse",
    "HealthResponse",
    "MessageResponse",
    "RegisterResponse",
    "StatusResponse",
    "TokenPairResponse",
    "UserListResponse",
    "UserProfileResponse",
]
