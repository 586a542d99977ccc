"""Stateless signing and verification of access and refresh tokens."""

from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import ValidationError

from inkwell.api.errors import ApiErrorCode, AuthenticationError
from inkwell.auth.models import TokenPayload
from inkwell.core.config import AuthConfig
from inkwell.core.security import build_signed_token, decode_signed_token

TokenKind = Literal["access", "refresh"]


class TokenService:
    """Issue ``{user_id, role}`` assertions signed with per-kind secrets."""

    def __init__(self, config: AuthConfig) -> None:
        self._config = config
        self._secrets: dict[str, str] = {
            "access": config.access_token_secret,
            "refresh": config.refresh_token_secret,
        }
        self._ttls: dict[str, int] = {
            "access": config.access_token_ttl_seconds,
            "refresh": config.refresh_token_ttl_seconds,
        }

    @property
    def access_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    @property
    def refresh_ttl_seconds(self) -> int:
        return self._config.refresh_token_ttl_seconds

    def sign_access(self, payload: TokenPayload) -> str:
        """Sign a 15-minute access token."""
        return self._sign(payload, "access")

    def sign_refresh(self, payload: TokenPayload) -> str:
        """Sign a 7-day refresh token."""
        return self._sign(payload, "refresh")

    def verify_access(self, token: str) -> TokenPayload:
        """Return the payload of a valid access token."""
        return self._verify(token, "access")

    def verify_refresh(self, token: str) -> TokenPayload:
        """Return the payload of a valid refresh token."""
        return self._verify(token, "refresh")

    def _sign(self, payload: TokenPayload, kind: TokenKind) -> str:
        now_ts = int(time.time())
        claims: dict[str, Any] = {
            "iss": self._config.issuer,
            "sub": payload.user_id,
            "role": str(payload.role),
            "type": kind,
            "iat": now_ts,
            "exp": now_ts + self._ttls[kind],
            # Unique per issuance so two tokens minted in the same second differ.
            "jti": uuid.uuid4().hex,
        }
        return build_signed_token(claims, self._secrets[kind])

    def _verify(self, token: str, kind: TokenKind) -> TokenPayload:
        message = f"Invalid or expired {kind} token"
        try:
            claims = decode_signed_token(token, self._secrets[kind])
        except ValueError as exc:
            raise AuthenticationError(message, ApiErrorCode.AUTH_TOKEN_INVALID) from exc

        if claims.get("iss") != self._config.issuer or claims.get("type") != kind:
            raise AuthenticationError(message, ApiErrorCode.AUTH_TOKEN_INVALID)
        subject = str(claims.get("sub") or "")
        if not subject:
            raise AuthenticationError(message, ApiErrorCode.AUTH_TOKEN_INVALID)
        try:
            return TokenPayload(user_id=subject, role=claims.get("role"))
        except ValidationError as exc:
            raise AuthenticationError(message, ApiErrorCode.AUTH_TOKEN_INVALID) from exc
