"""Liveness and housekeeping endpoints."""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Header

from inkwell.api.contracts import ApiErrorResponse, CleanupResponse, HealthResponse
from inkwell.api.errors import ApiError, ApiErrorCode
from inkwell.auth.middleware import extract_bearer_token
from inkwell.auth.service import AuthService


def create_maintenance_router(service: AuthService, *, cleanup_api_key: str = "") -> APIRouter:
    """Build router with the health check and the expired code sweep."""
    router = APIRouter(tags=["maintenance"])

    @router.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @router.post(
        "/api/maintenance/expired-codes",
        response_model=CleanupResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    def purge_expired_codes(authorization: str | None = Header(default=None)) -> CleanupResponse:
        """Delete expired verification codes. Open when no cleanup key is configured."""
        if cleanup_api_key:
            supplied = extract_bearer_token(authorization)
            if not hmac.compare_digest(supplied.encode("utf-8"), cleanup_api_key.encode("utf-8")):
                raise ApiError(
                    status_code=401,
                    error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
                    message="Unauthorized",
                )
        return CleanupResponse(removed=service.purge_expired_codes())

    return router
