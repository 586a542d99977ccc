"""Request authentication: bearer extraction, token verification and role gates."""

from __future__ import annotations

from typing import Callable, Iterable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from inkwell.api.contracts import ApiErrorResponse
from inkwell.api.errors import (
    ApiErrorCode,
    AuthenticationError,
    AuthorizationError,
    to_error_payload,
)
from inkwell.auth.models import TokenPayload, UserRole
from inkwell.auth.tokens import TokenService

PUBLIC_PATHS = frozenset(
    {
        "/api/health",
        "/api/auth/register",
        "/api/auth/verify-otp",
        "/api/auth/forgot-password",
        "/api/auth/reset-password",
        "/api/auth/login",
        "/api/auth/refresh",
        "/api/maintenance/expired-codes",
    }
)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def authenticate(tokens: TokenService, authorization: str | None) -> TokenPayload:
    """Resolve the caller identity from an ``Authorization`` header value.

    No database lookup happens here: a deactivated or demoted user keeps the
    identity in an unexpired access token until it expires.
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise AuthenticationError("No token provided", ApiErrorCode.AUTH_MISSING_TOKEN)
    return tokens.verify_access(token)


def require_role(identity: TokenPayload, allowed_roles: Iterable[UserRole]) -> TokenPayload:
    """Reject identities whose role is not in ``allowed_roles``."""
    if identity.role not in set(allowed_roles):
        raise AuthorizationError("Insufficient permissions")
    return identity


def create_auth_middleware(tokens: TokenService) -> Callable:
    """Create middleware that authenticates protected API routes."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Attach the verified identity to request state or answer 401."""
        path = request.url.path
        if not path.startswith("/api/") or path in PUBLIC_PATHS:
            return await call_next(request)

        if not extract_bearer_token(request.headers.get("authorization")):
            return JSONResponse(
                status_code=401,
                content=ApiErrorResponse(
                    error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                    message="No token provided",
                ).model_dump(),
            )

        try:
            identity = authenticate(tokens, request.headers.get("authorization"))
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=to_error_payload(exc.detail, exc.status_code),
            )

        request.state.identity = identity
        return await call_next(request)

    return auth_middleware
