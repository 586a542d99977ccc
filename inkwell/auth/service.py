"""Authentication service: OTP registration, login, token rotation and accounts."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Protocol

from inkwell.api.errors import (
    ApiErrorCode,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
)
from inkwell.auth.email_service import EmailNotifier
from inkwell.auth.models import (
    AuthSession,
    ClientInfo,
    CodePurpose,
    RefreshTokenRecord,
    TokenPair,
    TokenPayload,
    User,
    UserProfile,
    UserRole,
    VerificationCode,
)
from inkwell.auth.tokens import TokenService
from inkwell.core.config import AuthConfig
from inkwell.core.security import generate_otp, hash_secret, otp_matches, verify_secret

LOGGER = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid email or password"
INVALID_REFRESH_MESSAGE = "Invalid refresh token"
REGISTRATION_IN_PROGRESS_MESSAGE = (
    "Registration already in progress. Please check your email for OTP."
)
PASSWORD_RESET_SENT_MESSAGE = (
    "If an account with this email exists, a password reset OTP has been sent."
)
PROFILE_FIELDS = {"name", "email", "username", "bio", "avatar_url"}


class UserStore(Protocol):
    """User persistence used by the auth service."""

    def create(self, user: User) -> User: ...

    def get_by_id(self, user_id: str) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...

    def list_users(self) -> list[User]: ...

    def update(self, user_id: str, changes: dict[str, Any]) -> User | None: ...

    def update_password_by_email(self, email: str, password_hash: str) -> bool: ...

    def delete(self, user_id: str) -> bool: ...


class CodeStore(Protocol):
    """Verification code persistence used by the auth service."""

    def create(self, code: VerificationCode) -> VerificationCode: ...

    def get_by_email(self, email: str) -> VerificationCode | None: ...

    def increment_failed_attempts(self, code_id: str) -> int: ...

    def delete(self, code_id: str) -> bool: ...

    def delete_expired(self, now: int) -> int: ...


class SessionStore(Protocol):
    """Refresh token persistence used by the auth service."""

    def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord: ...

    def list_active_by_user(self, user_id: str) -> list[RefreshTokenRecord]: ...

    def revoke(self, token_id: str, revoked_at: int) -> None: ...

    def revoke_all_for_user(self, user_id: str, revoked_at: int) -> int: ...

    def delete_all_for_user(self, user_id: str) -> int: ...


def _now() -> int:
    return int(time.time())


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Coordinates credential, code and session stores with token signing.

    Registration is a three-step protocol: ``register`` stores a pending
    verification code and emails it, ``verify_otp`` turns the code into a
    user plus a first session. Password reset reuses the same code store
    with ``purpose=password_reset``; a single live code per email is
    enforced by the store across both purposes.
    """

    def __init__(
        self,
        *,
        users: UserStore,
        codes: CodeStore,
        sessions: SessionStore,
        tokens: TokenService,
        notifier: EmailNotifier,
        config: AuthConfig,
    ) -> None:
        self._users = users
        self._codes = codes
        self._sessions = sessions
        self._tokens = tokens
        self._notifier = notifier
        self._config = config
        # Compared against when the email is unknown so login timing does not
        # reveal whether an account exists.
        self._dummy_hash = hash_secret(uuid.uuid4().hex, config.bcrypt_rounds)

    # Registration

    def register(
        self, email: str, name: str, password: str, username: str | None = None
    ) -> dict[str, str]:
        """Store a pending registration and email its OTP."""
        key = _normalize_email(email)
        if self._users.get_by_email(key) is not None:
            LOGGER.info("registration_rejected", extra={"email": key, "reason": "user_exists"})
            raise ConflictError("User with this email already exists")

        now = _now()
        existing = self._codes.get_by_email(key)
        if existing is not None:
            if not existing.is_expired(now):
                raise ConflictError(REGISTRATION_IN_PROGRESS_MESSAGE)
            self._codes.delete(existing.code_id)

        code = VerificationCode(
            code_id=uuid.uuid4().hex,
            email=key,
            purpose=CodePurpose.REGISTRATION,
            name=name.strip(),
            username=username,
            password_hash=hash_secret(password, self._config.bcrypt_rounds),
            otp_code=generate_otp(),
            otp_expires_at=now + self._config.otp_ttl_seconds,
            created_at=now,
        )
        try:
            self._codes.create(code)
        except ConflictError as exc:
            # Lost a race with a concurrent register() for the same email.
            raise ConflictError(REGISTRATION_IN_PROGRESS_MESSAGE) from exc

        try:
            self._notifier.send_otp_email(key, code.otp_code, code.name)
        except Exception as exc:
            self._codes.delete(code.code_id)
            LOGGER.warning(
                "registration_email_failed",
                extra={"email": key, "reason": type(exc).__name__},
            )
            raise AuthenticationError(
                "Failed to send verification email. Please try again.",
                ApiErrorCode.AUTH_EMAIL_DELIVERY_FAILED,
            ) from exc

        LOGGER.info("registration_pending", extra={"email": key, "purpose": code.purpose})
        return {
            "message": "OTP sent to your email. Please verify to complete registration.",
            "email": key,
        }

    def verify_otp(self, email: str, otp: str, client: ClientInfo | None = None) -> AuthSession:
        """Confirm a pending registration and open the first session."""
        key = _normalize_email(email)
        code = self._consume_code(
            key,
            otp,
            CodePurpose.REGISTRATION,
            missing_message="No pending registration found. Please register first.",
            expired_message="OTP has expired. Please register again.",
        )

        now = _now()
        user = User(
            user_id=uuid.uuid4().hex,
            email=code.email,
            username=code.username,
            password_hash=code.password_hash,
            name=code.name,
            role=UserRole.USER,
            is_active=True,
            email_verified=True,
            created_at=now,
            updated_at=now,
        )
        try:
            self._users.create(user)
        finally:
            self._codes.delete(code.code_id)

        LOGGER.info("registration_verified", extra={"user_id": user.user_id, "email": key})
        return AuthSession(user=user.public_profile(), tokens=self._issue_session(user, client))

    # Password reset

    def forgot_password(self, email: str) -> dict[str, str]:
        """Email a reset OTP if the account exists; the answer never says which."""
        response = {"message": PASSWORD_RESET_SENT_MESSAGE}
        key = _normalize_email(email)
        user = self._users.get_by_email(key)
        if user is None:
            LOGGER.info("password_reset_skipped", extra={"reason": "unknown_email"})
            return response

        now = _now()
        existing = self._codes.get_by_email(key)
        if existing is not None:
            if not existing.is_expired(now):
                LOGGER.info("password_reset_skipped", extra={"reason": "code_pending"})
                return response
            self._codes.delete(existing.code_id)

        code = VerificationCode(
            code_id=uuid.uuid4().hex,
            email=key,
            purpose=CodePurpose.PASSWORD_RESET,
            name=user.name,
            username=user.username,
            password_hash=user.password_hash,
            otp_code=generate_otp(),
            otp_expires_at=now + self._config.otp_ttl_seconds,
            created_at=now,
        )
        try:
            self._codes.create(code)
        except ConflictError:
            LOGGER.info("password_reset_skipped", extra={"reason": "concurrent_request"})
            return response

        try:
            self._notifier.send_password_reset_otp_email(key, code.otp_code, user.name)
        except Exception as exc:
            self._codes.delete(code.code_id)
            LOGGER.warning(
                "password_reset_email_failed",
                extra={"user_id": user.user_id, "reason": type(exc).__name__},
            )
            return response

        LOGGER.info("password_reset_pending", extra={"user_id": user.user_id})
        return response

    def reset_password(self, email: str, otp: str, new_password: str) -> dict[str, str]:
        """Set a new password after OTP confirmation. Sessions stay valid."""
        key = _normalize_email(email)
        code = self._consume_code(
            key,
            otp,
            CodePurpose.PASSWORD_RESET,
            missing_message=(
                "No password reset request found. Please request a new password reset."
            ),
            expired_message=(
                "Password reset OTP has expired. Please request a new password reset."
            ),
        )
        updated = self._users.update_password_by_email(
            key, hash_secret(new_password, self._config.bcrypt_rounds)
        )
        self._codes.delete(code.code_id)
        if not updated:
            raise NotFoundError("User not found")

        LOGGER.info("password_reset_completed", extra={"email": key})
        return {
            "message": (
                "Password has been reset successfully. "
                "You can now log in with your new password."
            )
        }

    def _consume_code(
        self,
        email: str,
        otp: str,
        purpose: CodePurpose,
        *,
        missing_message: str,
        expired_message: str,
    ) -> VerificationCode:
        """Return the matching live code or raise; wrong guesses count toward lockout."""
        code = self._codes.get_by_email(email)
        if code is None or code.purpose != purpose:
            raise NotFoundError(missing_message)

        if code.is_expired(_now()):
            self._codes.delete(code.code_id)
            LOGGER.info("otp_rejected", extra={"email": email, "purpose": purpose, "reason": "expired"})
            raise AuthenticationError(expired_message, ApiErrorCode.AUTH_OTP_EXPIRED)

        if not otp_matches(code.otp_code, otp):
            attempts = self._codes.increment_failed_attempts(code.code_id)
            LOGGER.info(
                "otp_rejected",
                extra={"email": email, "purpose": purpose, "reason": f"mismatch_{attempts}"},
            )
            if attempts >= self._config.otp_max_attempts:
                self._codes.delete(code.code_id)
                raise AuthenticationError(
                    "Too many invalid attempts. Please request a new code.",
                    ApiErrorCode.AUTH_OTP_INVALID,
                )
            raise AuthenticationError("Invalid OTP. Please try again.", ApiErrorCode.AUTH_OTP_INVALID)

        return code

    # Sessions

    def login(self, email: str, password: str, client: ClientInfo | None = None) -> AuthSession:
        """Check credentials and open an additional session."""
        key = _normalize_email(email)
        user = self._users.get_by_email(key)
        if user is None:
            verify_secret(password, self._dummy_hash)
            LOGGER.info("login_rejected", extra={"reason": "unknown_email"})
            raise AuthenticationError(INVALID_LOGIN_MESSAGE)
        if not verify_secret(password, user.password_hash):
            LOGGER.info("login_rejected", extra={"user_id": user.user_id, "reason": "bad_password"})
            raise AuthenticationError(INVALID_LOGIN_MESSAGE)
        if not user.is_active:
            LOGGER.info("login_rejected", extra={"user_id": user.user_id, "reason": "inactive"})
            raise AuthenticationError("Account is deactivated", ApiErrorCode.AUTH_ACCOUNT_INACTIVE)

        user = self._users.update(user.user_id, {"last_login_at": _now()}) or user
        tokens = self._issue_session(user, client)
        LOGGER.info("login_succeeded", extra={"user_id": user.user_id})
        return AuthSession(user=user.public_profile(), tokens=tokens)

    def refresh_token(self, raw_token: str, client: ClientInfo | None = None) -> TokenPair:
        """Rotate a refresh token: the new session is stored before the old one is revoked."""
        try:
            payload = self._tokens.verify_refresh(raw_token)
        except AuthenticationError as exc:
            raise self._refresh_rejected("bad_signature") from exc

        now = _now()
        # Hashes are salted, so the presented token is checked against each
        # of the user's live sessions instead of looked up directly.
        record = next(
            (
                candidate
                for candidate in self._sessions.list_active_by_user(payload.user_id)
                if verify_secret(raw_token, candidate.token_hash)
            ),
            None,
        )
        if record is None:
            raise self._refresh_rejected("unknown_or_revoked", payload.user_id)
        if not record.is_active(now):
            raise self._refresh_rejected("expired", payload.user_id)

        user = self._users.get_by_id(payload.user_id)
        if user is None or not user.is_active:
            raise self._refresh_rejected("inactive_user", payload.user_id)

        tokens = self._issue_session(user, client, family_id=record.family_id)
        self._sessions.revoke(record.token_id, now)
        LOGGER.info("refresh_rotated", extra={"user_id": user.user_id})
        return tokens

    def logout(self, user_id: str) -> None:
        """End every session of the user."""
        revoked = self._sessions.revoke_all_for_user(user_id, _now())
        LOGGER.info("sessions_revoked", extra={"user_id": user_id, "removed": revoked})

    def _issue_session(
        self, user: User, client: ClientInfo | None, *, family_id: str | None = None
    ) -> TokenPair:
        payload = TokenPayload(user_id=user.user_id, role=user.role)
        access_token = self._tokens.sign_access(payload)
        refresh_token = self._tokens.sign_refresh(payload)
        now = _now()
        client = client or ClientInfo()
        self._sessions.create(
            RefreshTokenRecord(
                token_id=uuid.uuid4().hex,
                user_id=user.user_id,
                token_hash=hash_secret(refresh_token, self._config.bcrypt_rounds),
                family_id=family_id or uuid.uuid4().hex,
                created_at=now,
                expires_at=now + self._tokens.refresh_ttl_seconds,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
                device=client.device,
            )
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._tokens.access_ttl_seconds,
        )

    @staticmethod
    def _refresh_rejected(reason: str, user_id: str = "") -> AuthenticationError:
        LOGGER.info("refresh_rejected", extra={"user_id": user_id, "reason": reason})
        return AuthenticationError(INVALID_REFRESH_MESSAGE, ApiErrorCode.AUTH_TOKEN_INVALID)

    # Account self-service

    def get_profile(self, user_id: str) -> UserProfile:
        return self._require_user(user_id).public_profile()

    def update_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile:
        """Apply profile edits; ``avatar`` is stored as ``avatar_url``."""
        self._require_user(user_id)
        values = dict(changes)
        if "avatar" in values:
            values["avatar_url"] = values.pop("avatar")
        unknown = set(values) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {sorted(unknown)}")
        if "email" in values:
            values["email"] = _normalize_email(values["email"])

        updated = self._users.update(user_id, values) if values else self._users.get_by_id(user_id)
        if updated is None:
            raise NotFoundError("User not found")
        return updated.public_profile()

    def change_password(self, user_id: str, current_password: str, new_password: str) -> dict[str, str]:
        """Replace the password and sign the user out everywhere."""
        user = self._require_user(user_id)
        if not verify_secret(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        self._users.update(
            user_id, {"password_hash": hash_secret(new_password, self._config.bcrypt_rounds)}
        )
        self.logout(user_id)
        return {"message": "Password changed successfully. Please log in again."}

    def deactivate_account(self, user_id: str) -> None:
        self._require_user(user_id)
        self._users.update(user_id, {"is_active": False})
        self.logout(user_id)

    def delete_account(self, user_id: str) -> None:
        self._require_user(user_id)
        removed = self._sessions.delete_all_for_user(user_id)
        self._users.delete(user_id)
        LOGGER.info("account_deleted", extra={"user_id": user_id, "removed": removed})

    def _require_user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # Admin

    def get_all_users(self, admin_user_id: str) -> list[UserProfile]:
        self._require_admin(admin_user_id)
        return [user.public_profile() for user in self._users.list_users()]

    def update_user_role(self, admin_user_id: str, target_user_id: str, role: UserRole) -> UserProfile:
        self._require_admin(admin_user_id)
        updated = self._users.update(target_user_id, {"role": UserRole(role)})
        if updated is None:
            raise NotFoundError("User not found")
        LOGGER.info("role_changed", extra={"user_id": target_user_id, "reason": str(role)})
        return updated.public_profile()

    def delete_user_by_admin(self, admin_user_id: str, target_user_id: str) -> dict[str, str]:
        self._require_admin(admin_user_id)
        if admin_user_id == target_user_id:
            raise AuthorizationError("Cannot delete your own account as admin")
        target = self._users.get_by_id(target_user_id)
        if target is None:
            raise NotFoundError("User not found")

        self._sessions.delete_all_for_user(target_user_id)
        self._users.delete(target_user_id)
        LOGGER.info("account_deleted", extra={"user_id": target_user_id, "reason": "admin"})
        return {"message": f"User {target.email} has been deleted successfully"}

    def _require_admin(self, user_id: str) -> User:
        # Routes already gate on the token's role; the stored role is checked
        # again so a demoted admin's unexpired access token stops working.
        admin = self._users.get_by_id(user_id)
        if admin is None or admin.role != UserRole.ADMIN or not admin.is_active:
            raise AuthorizationError("Admin access required")
        return admin

    # Maintenance

    def purge_expired_codes(self) -> int:
        """Delete expired verification codes; safe to run alongside registrations."""
        removed = self._codes.delete_expired(_now())
        LOGGER.info("expired_codes_purged", extra={"removed": removed})
        return removed

    def bootstrap_admin_user(self) -> None:
        """Ensure the configured admin account exists."""
        email = _normalize_email(self._config.admin_email)
        if not email or not self._config.admin_password:
            return
        if self._users.get_by_email(email) is not None:
            return

        now = _now()
        self._users.create(
            User(
                user_id=uuid.uuid4().hex,
                email=email,
                password_hash=hash_secret(self._config.admin_password, self._config.bcrypt_rounds),
                name="Administrator",
                role=UserRole.ADMIN,
                is_active=True,
                email_verified=True,
                created_at=now,
                updated_at=now,
            )
        )
        LOGGER.info("admin_bootstrapped", extra={"email": email})
