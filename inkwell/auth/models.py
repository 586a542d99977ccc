"""Pydantic models for authentication domain."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field


class UserRole(StrEnum):
    """Roles a platform account can hold."""

    USER = "user"
    EDITOR = "editor"
    ADMIN = "admin"


class CodePurpose(StrEnum):
    """What an emailed one-time code unlocks."""

    REGISTRATION = "registration"
    PASSWORD_RESET = "password_reset"


class User(BaseModel):
    """Persisted platform account."""

    user_id: str
    email: str
    username: str | None = None
    password_hash: str
    name: str
    bio: str | None = None
    avatar_url: str | None = None
    role: UserRole = UserRole.USER
    is_active: bool = True
    email_verified: bool = False
    last_login_at: int | None = None
    created_at: int
    updated_at: int

    def public_profile(self) -> "UserProfile":
        """Return the account without its password hash."""
        return UserProfile.model_validate(self.model_dump(exclude={"password_hash"}))


class UserProfile(BaseModel):
    """User fields that are safe to return to clients."""

    user_id: str
    email: str
    username: str | None = None
    name: str
    bio: str | None = None
    avatar_url: str | None = None
    role: UserRole
    is_active: bool
    email_verified: bool
    last_login_at: int | None = None
    created_at: int
    updated_at: int


class VerificationCode(BaseModel):
    """Expiring emailed code for signup confirmation or password reset.

    For ``registration`` the password hash is the one the account will be
    created with; for ``password_reset`` it is the existing hash, unchanged.
    """

    code_id: str
    email: str
    purpose: CodePurpose
    name: str
    username: str | None = None
    password_hash: str
    otp_code: str
    otp_expires_at: int
    failed_attempts: int = 0
    created_at: int

    def is_expired(self, now: int) -> bool:
        return now > self.otp_expires_at


class RefreshTokenRecord(BaseModel):
    """Refresh token persistence record (hash only, never the raw token)."""

    token_id: str
    user_id: str
    token_hash: str
    family_id: str | None = None
    created_at: int
    expires_at: int
    revoked_at: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    device: str | None = None

    def is_active(self, now: int) -> bool:
        return self.revoked_at is None and self.expires_at > now


class TokenPayload(BaseModel):
    """Identity asserted by access and refresh tokens."""

    user_id: str
    role: UserRole


class ClientInfo(BaseModel):
    """Request metadata stored alongside a refresh token."""

    ip_address: str | None = None
    user_agent: str | None = None
    device: str | None = None


class TokenPair(BaseModel):
    """Freshly issued access/refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthSession(BaseModel):
    """Profile plus tokens returned by login and OTP verification."""

    user: UserProfile
    tokens: TokenPair


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise ValueError("Invalid email address")
    return normalized


EmailAddress = Annotated[str, Field(min_length=3), AfterValidator(_normalize_email)]


class RegisterRequest(BaseModel):
    """Registration request payload."""

    name: str = Field(min_length=1)
    email: EmailAddress
    password: str = Field(min_length=6)
    username: str | None = Field(default=None, min_length=3)


class VerifyOtpRequest(BaseModel):
    """OTP confirmation payload."""

    email: EmailAddress
    otp: str = Field(pattern=r"^\d{6}$")


class ForgotPasswordRequest(BaseModel):
    """Password reset request payload."""

    email: EmailAddress


class ResetPasswordRequest(BaseModel):
    """Password reset confirmation payload."""

    email: EmailAddress
    otp: str = Field(pattern=r"^\d{6}$")
    new_password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    """Login request payload."""

    email: EmailAddress
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    """Refresh request payload."""

    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    """Password change payload for an authenticated user."""

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class UpdateProfileRequest(BaseModel):
    """Partial profile update; unset fields are left untouched."""

    name: str | None = Field(default=None, min_length=1)
    email: EmailAddress | None = None
    username: str | None = Field(default=None, min_length=3)
    bio: str | None = Field(default=None, max_length=500)
    avatar: str | None = None


class UpdateRoleRequest(BaseModel):
    """Admin role change payload."""

    role: UserRole
