"""In-memory stand-ins for the credential stores and email notifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from inkwell.api.errors import ConflictError
from inkwell.auth.models import RefreshTokenRecord, User, VerificationCode
from inkwell.auth.service import AuthService
from inkwell.auth.tokens import TokenService
from inkwell.core.config import AuthConfig


@dataclass
class FakeUsers:
    users: dict[str, User] = field(default_factory=dict)
    sessions: "FakeSessions | None" = None

    def create(self, user: User) -> User:
        if any(existing.email == user.email for existing in self.users.values()):
            raise ConflictError("User with this email already exists")
        self.users[user.user_id] = user
        return user

    def get_by_id(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def get_by_email(self, email: str) -> User | None:
        return next((user for user in self.users.values() if user.email == email), None)

    def list_users(self) -> list[User]:
        return sorted(self.users.values(), key=lambda user: (user.created_at, user.email))

    def update(self, user_id: str, changes: dict[str, Any]) -> User | None:
        user = self.users.get(user_id)
        if user is None:
            return None
        email = changes.get("email")
        if email and any(
            other.email == email and other.user_id != user_id for other in self.users.values()
        ):
            raise ConflictError("User with this email already exists")
        updated = user.model_copy(update=dict(changes))
        self.users[user_id] = updated
        return updated

    def update_password_by_email(self, email: str, password_hash: str) -> bool:
        user = self.get_by_email(email)
        if user is None:
            return False
        self.users[user.user_id] = user.model_copy(update={"password_hash": password_hash})
        return True

    def delete(self, user_id: str) -> bool:
        if self.sessions is not None:
            self.sessions.delete_all_for_user(user_id)
        return self.users.pop(user_id, None) is not None


@dataclass
class FakeCodes:
    codes: dict[str, VerificationCode] = field(default_factory=dict)

    def create(self, code: VerificationCode) -> VerificationCode:
        if any(existing.email == code.email for existing in self.codes.values()):
            raise ConflictError("A verification code is already pending for this email")
        self.codes[code.code_id] = code
        return code

    def get_by_email(self, email: str) -> VerificationCode | None:
        return next((code for code in self.codes.values() if code.email == email), None)

    def increment_failed_attempts(self, code_id: str) -> int:
        code = self.codes.get(code_id)
        if code is None:
            return 0
        self.codes[code_id] = code.model_copy(update={"failed_attempts": code.failed_attempts + 1})
        return code.failed_attempts + 1

    def delete(self, code_id: str) -> bool:
        return self.codes.pop(code_id, None) is not None

    def delete_expired(self, now: int) -> int:
        expired = [code_id for code_id, code in self.codes.items() if code.otp_expires_at < now]
        for code_id in expired:
            del self.codes[code_id]
        return len(expired)

    def expire(self, email: str) -> None:
        """Move the code for ``email`` into the past."""
        code = self.get_by_email(email)
        assert code is not None
        self.codes[code.code_id] = code.model_copy(update={"otp_expires_at": 1})


@dataclass
class FakeSessions:
    records: dict[str, RefreshTokenRecord] = field(default_factory=dict)

    def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        self.records[record.token_id] = record
        return record

    def get_by_id(self, token_id: str) -> RefreshTokenRecord | None:
        return self.records.get(token_id)

    def list_active_by_user(self, user_id: str) -> list[RefreshTokenRecord]:
        active = [
            record
            for record in self.records.values()
            if record.user_id == user_id and record.revoked_at is None
        ]
        return sorted(active, key=lambda record: record.created_at, reverse=True)

    def revoke(self, token_id: str, revoked_at: int) -> None:
        record = self.records.get(token_id)
        if record is not None:
            self.records[token_id] = record.model_copy(update={"revoked_at": revoked_at})

    def revoke_all_for_user(self, user_id: str, revoked_at: int) -> int:
        active = self.list_active_by_user(user_id)
        for record in active:
            self.revoke(record.token_id, revoked_at)
        return len(active)

    def delete_all_for_user(self, user_id: str) -> int:
        doomed = [key for key, record in self.records.items() if record.user_id == user_id]
        for key in doomed:
            del self.records[key]
        return len(doomed)

    def for_user(self, user_id: str) -> list[RefreshTokenRecord]:
        return [record for record in self.records.values() if record.user_id == user_id]


@dataclass
class RecordingNotifier:
    sent: list[tuple[str, str, str]] = field(default_factory=list)
    fail: bool = False

    def send_otp_email(self, email: str, otp: str, name: str | None = None) -> None:
        self._deliver("registration", email, otp)

    def send_password_reset_otp_email(self, email: str, otp: str, name: str | None = None) -> None:
        self._deliver("password_reset", email, otp)

    def _deliver(self, purpose: str, email: str, otp: str) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((purpose, email, otp))

    def last_otp(self, email: str) -> str:
        return next(otp for _, to, otp in reversed(self.sent) if to == email)


def auth_config(**overrides: Any) -> AuthConfig:
    values: dict[str, Any] = {
        "access_token_secret": "test-access-secret",
        "refresh_token_secret": "test-refresh-secret",
        "issuer": "inkwell-test",
        "bcrypt_rounds": 4,
        "admin_email": "admin@inkwell.test",
        "admin_password": "admin-pass",
    }
    values.update(overrides)
    return AuthConfig(**values)


@dataclass
class Harness:
    service: AuthService
    tokens: TokenService
    users: FakeUsers
    codes: FakeCodes
    sessions: FakeSessions
    notifier: RecordingNotifier


def build_harness(**config_overrides: Any) -> Harness:
    config = auth_config(**config_overrides)
    sessions = FakeSessions()
    users = FakeUsers(sessions=sessions)
    codes = FakeCodes()
    notifier = RecordingNotifier()
    tokens = TokenService(config)
    service = AuthService(
        users=users,
        codes=codes,
        sessions=sessions,
        tokens=tokens,
        notifier=notifier,
        config=config,
    )
    service.bootstrap_admin_user()
    return Harness(service, tokens, users, codes, sessions, notifier)
