"""Authentication, account and admin API router."""

from __future__ import annotations

from fastapi import APIRouter, Request

from inkwell.api.contracts import (
    ApiErrorResponse,
    AuthSessionResponse,
    MessageResponse,
    RegisterResponse,
    StatusResponse,
    TokenPairResponse,
    UserListResponse,
    UserProfileResponse,
)
from inkwell.api.errors import ApiError
from inkwell.auth.middleware import authenticate, require_role
from inkwell.auth.models import (
    ChangePasswordRequest,
    ClientInfo,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPayload,
    UpdateProfileRequest,
    UpdateRoleRequest,
    UserRole,
    VerifyOtpRequest,
)
from inkwell.auth.rate_limiter import SCOPE_FORGOT_PASSWORD, SCOPE_LOGIN, AttemptLimiter
from inkwell.auth.service import AuthService
from inkwell.auth.tokens import TokenService

_ERRORS_401 = {401: {"model": ApiErrorResponse}}
_ERRORS_ADMIN = {
    401: {"model": ApiErrorResponse},
    403: {"model": ApiErrorResponse},
    404: {"model": ApiErrorResponse},
}


def _client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def _client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent") or None,
        device=request.headers.get("x-device-name") or None,
    )


def create_auth_router(
    service: AuthService, tokens: TokenService, rate_limiter: AttemptLimiter
) -> APIRouter:
    """Build router with registration, session, profile and admin endpoints."""
    router = APIRouter(tags=["auth"])

    def current_identity(request: Request) -> TokenPayload:
        """Identity attached by the auth middleware, or verified from the header."""
        identity = getattr(request.state, "identity", None)
        if isinstance(identity, TokenPayload):
            return identity
        return authenticate(tokens, request.headers.get("authorization"))

    def current_admin(request: Request) -> TokenPayload:
        return require_role(current_identity(request), {UserRole.ADMIN})

    @router.post(
        "/api/auth/register",
        response_model=RegisterResponse,
        responses={401: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def register(req: RegisterRequest) -> RegisterResponse:
        """Start registration and email an OTP."""
        result = service.register(req.email, req.name, req.password, req.username)
        return RegisterResponse(**result)

    @router.post(
        "/api/auth/verify-otp",
        response_model=AuthSessionResponse,
        responses={401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    def verify_otp(req: VerifyOtpRequest, request: Request) -> AuthSessionResponse:
        """Complete registration and return the first session."""
        session = service.verify_otp(req.email, req.otp, _client_info(request))
        return AuthSessionResponse(**session.model_dump())

    @router.post(
        "/api/auth/forgot-password",
        response_model=MessageResponse,
        responses={429: {"model": ApiErrorResponse}},
    )
    def forgot_password(req: ForgotPasswordRequest, request: Request) -> MessageResponse:
        """Request a password reset OTP; the answer is the same for every email."""
        client_ip = _client_ip(request)
        rate_limiter.assert_allowed(scope=SCOPE_FORGOT_PASSWORD, email=req.email, client_ip=client_ip)
        rate_limiter.record_failure(scope=SCOPE_FORGOT_PASSWORD, email=req.email, client_ip=client_ip)
        return MessageResponse(**service.forgot_password(req.email))

    @router.post(
        "/api/auth/reset-password",
        response_model=MessageResponse,
        responses={401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    def reset_password(req: ResetPasswordRequest) -> MessageResponse:
        """Set a new password using an emailed OTP."""
        return MessageResponse(**service.reset_password(req.email, req.otp, req.new_password))

    @router.post(
        "/api/auth/login",
        response_model=AuthSessionResponse,
        responses={401: {"model": ApiErrorResponse}, 429: {"model": ApiErrorResponse}},
    )
    def login(req: LoginRequest, request: Request) -> AuthSessionResponse:
        """Authenticate user and return profile plus token pair."""
        client_ip = _client_ip(request)
        rate_limiter.assert_allowed(scope=SCOPE_LOGIN, email=req.email, client_ip=client_ip)
        try:
            session = service.login(req.email, req.password, _client_info(request))
        except ApiError:
            rate_limiter.record_failure(scope=SCOPE_LOGIN, email=req.email, client_ip=client_ip)
            raise
        rate_limiter.record_success(scope=SCOPE_LOGIN, email=req.email, client_ip=client_ip)
        return AuthSessionResponse(**session.model_dump())

    @router.post("/api/auth/refresh", response_model=TokenPairResponse, responses=_ERRORS_401)
    def refresh(req: RefreshRequest, request: Request) -> TokenPairResponse:
        """Rotate refresh token and issue a new pair."""
        pair = service.refresh_token(req.refresh_token, _client_info(request))
        return TokenPairResponse(**pair.model_dump())

    @router.post("/api/auth/logout", response_model=StatusResponse, responses=_ERRORS_401)
    def logout(request: Request) -> StatusResponse:
        """Revoke every session of the caller."""
        service.logout(current_identity(request).user_id)
        return StatusResponse(status="ok")

    @router.get("/api/auth/me", response_model=UserProfileResponse, responses=_ERRORS_401)
    def me(request: Request) -> UserProfileResponse:
        """Return the caller's profile."""
        return UserProfileResponse(user=service.get_profile(current_identity(request).user_id))

    @router.patch(
        "/api/auth/me",
        response_model=UserProfileResponse,
        responses={401: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def update_me(req: UpdateProfileRequest, request: Request) -> UserProfileResponse:
        """Edit the caller's profile fields."""
        identity = current_identity(request)
        changes = req.model_dump(exclude_unset=True, exclude_none=True)
        return UserProfileResponse(user=service.update_profile(identity.user_id, changes))

    @router.post(
        "/api/auth/change-password", response_model=MessageResponse, responses=_ERRORS_401
    )
    def change_password(req: ChangePasswordRequest, request: Request) -> MessageResponse:
        """Change password and end all sessions."""
        identity = current_identity(request)
        return MessageResponse(
            **service.change_password(identity.user_id, req.current_password, req.new_password)
        )

    @router.post("/api/auth/deactivate", response_model=StatusResponse, responses=_ERRORS_401)
    def deactivate(request: Request) -> StatusResponse:
        service.deactivate_account(current_identity(request).user_id)
        return StatusResponse(status="ok")

    @router.delete("/api/auth/me", response_model=StatusResponse, responses=_ERRORS_401)
    def delete_me(request: Request) -> StatusResponse:
        service.delete_account(current_identity(request).user_id)
        return StatusResponse(status="ok")

    @router.get("/api/admin/users", response_model=UserListResponse, responses=_ERRORS_ADMIN)
    def list_users(request: Request) -> UserListResponse:
        """List every account (admin only)."""
        admin = current_admin(request)
        return UserListResponse(users=service.get_all_users(admin.user_id))

    @router.patch(
        "/api/admin/users/{user_id}/role",
        response_model=UserProfileResponse,
        responses=_ERRORS_ADMIN,
    )
    def update_role(user_id: str, req: UpdateRoleRequest, request: Request) -> UserProfileResponse:
        """Change another account's role (admin only)."""
        admin = current_admin(request)
        return UserProfileResponse(user=service.update_user_role(admin.user_id, user_id, req.role))

    @router.delete(
        "/api/admin/users/{user_id}", response_model=MessageResponse, responses=_ERRORS_ADMIN
    )
    def delete_user(user_id: str, request: Request) -> MessageResponse:
        """Delete another account and its sessions (admin only)."""
        admin = current_admin(request)
        return MessageResponse(**service.delete_user_by_admin(admin.user_id, user_id))

    return router
