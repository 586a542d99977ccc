"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from inkwell.auth.models import AuthSession, TokenPair, UserProfile


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class MessageResponse(BaseModel):
    """Plain confirmation message."""

    message: str


class RegisterResponse(BaseModel):
    """Pending registration acknowledgement."""

    message: str
    email: str


class UserProfileResponse(BaseModel):
    """Single user profile payload."""

    user: UserProfile


class AuthSessionResponse(AuthSession):
    """Profile and token pair returned by login and OTP verification."""


class TokenPairResponse(TokenPair):
    """Token pair returned by refresh rotation."""


class UserListResponse(BaseModel):
    """Admin user listing payload."""

    users: list[UserProfile]


class StatusResponse(BaseModel):
    """Acknowledgement for state-changing calls with no other payload."""

    status: Literal["ok"]


class CleanupResponse(BaseModel):
    """Result of an expired verification code sweep."""

    removed: int
