"""Security primitives for password hashing, OTP codes and token signing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from typing import Any

import bcrypt

OTP_DIGITS = 6


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def _prehash(value: str) -> bytes:
    # bcrypt reads at most 72 bytes; signed tokens share a long common prefix.
    return base64.b64encode(hashlib.sha256(value.encode("utf-8")).digest())


def hash_secret(value: str, rounds: int = 12) -> str:
    """Hash a password or raw refresh token with salted bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_prehash(value), salt).decode("utf-8")


def verify_secret(value: str, stored_hash: str) -> bool:
    """Check a password or raw refresh token against a bcrypt hash."""
    try:
        return bcrypt.checkpw(_prehash(value), stored_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_otp() -> str:
    """Draw a uniform 6-digit code in the 000000-999999 range."""
    return f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"


def otp_matches(expected: str, supplied: str) -> bool:
    """Compare OTP codes in constant time."""
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact signed token using JWT-like 3-part structure."""
    header = {"alg": "HS256", "typ": "JWT"}
    header_part = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_part = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    signature_part = _b64url_encode(signature)
    return f"{header_part}.{payload_part}.{signature_part}"


def decode_signed_token(token: str, secret_key: str) -> dict[str, Any]:
    """Decode and verify compact signed token, raising ``ValueError`` on failure."""
    try:
        header_part, payload_part, signature_part = token.split(".", 2)
        got_sig = _b64url_decode(signature_part)
    except ValueError as exc:
        raise ValueError("Malformed token") from exc

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    expected_sig = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, got_sig):
        raise ValueError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except ValueError as exc:
        raise ValueError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise ValueError("Invalid token payload")

    exp = int(payload.get("exp") or 0)
    if not exp or exp <= int(time.time()):
        raise ValueError("Token expired")

    return payload
