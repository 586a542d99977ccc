from __future__ import annotations

from pathlib import Path

import pytest

from inkwell.api.errors import ConflictError
from inkwell.auth.models import (
    CodePurpose,
    RefreshTokenRecord,
    User,
    UserRole,
    VerificationCode,
)
from inkwell.auth.repository import (
    RefreshTokenRepository,
    UserRepository,
    VerificationCodeRepository,
)


def _user(user_id: str = "u1", email: str = "ann@example.com") -> User:
    return User(
        user_id=user_id,
        email=email,
        password_hash="hash",
        name="Ann",
        email_verified=True,
        created_at=1_700_000_000,
        updated_at=1_700_000_000,
    )


def _code(code_id: str = "c1", email: str = "ann@example.com", expires_at: int = 2_000_000_000):
    return VerificationCode(
        code_id=code_id,
        email=email,
        purpose=CodePurpose.REGISTRATION,
        name="Ann",
        password_hash="hash",
        otp_code="123456",
        otp_expires_at=expires_at,
        created_at=1_700_000_000,
    )


def _token(token_id: str, user_id: str = "u1", created_at: int = 1_700_000_000):
    return RefreshTokenRecord(
        token_id=token_id,
        user_id=user_id,
        token_hash=f"hash-{token_id}",
        family_id="f1",
        created_at=created_at,
        expires_at=2_000_000_000,
    )


def test_user_repository_round_trip_and_case_insensitive_lookup(tmp_path: Path) -> None:
    repo = UserRepository(database_path=tmp_path / "inkwell.db")

    repo.create(_user())
    found = repo.get_by_email("  ANN@example.com")

    assert found is not None
    assert found.user_id == "u1"
    assert found.role == UserRole.USER
    assert found.is_active is True
    assert repo.get_by_id("missing") is None
    repo.close()


def test_user_repository_rejects_duplicate_email(tmp_path: Path) -> None:
    repo = UserRepository(database_path=tmp_path / "inkwell.db")
    repo.create(_user())

    with pytest.raises(ConflictError) as exc:
        repo.create(_user(user_id="u2"))

    assert exc.value.message == "User with this email already exists"
    repo.close()


def test_user_repository_partial_update(tmp_path: Path) -> None:
    repo = UserRepository(database_path=tmp_path / "inkwell.db")
    repo.create(_user())

    updated = repo.update("u1", {"role": UserRole.EDITOR, "is_active": False, "bio": "hi"})

    assert updated is not None
    assert updated.role == UserRole.EDITOR
    assert updated.is_active is False
    assert updated.bio == "hi"
    assert updated.updated_at > 1_700_000_000
    assert repo.update("missing", {"bio": "x"}) is None
    with pytest.raises(ValueError):
        repo.update("u1", {"user_id": "hijack"})
    assert repo.update_password_by_email("ann@example.com", "new-hash") is True
    assert repo.get_by_id("u1").password_hash == "new-hash"
    repo.close()


def test_deleting_user_cascades_to_refresh_tokens(tmp_path: Path) -> None:
    db_path = tmp_path / "inkwell.db"
    users = UserRepository(database_path=db_path)
    tokens = RefreshTokenRepository(database_path=db_path)
    users.create(_user())
    tokens.create(_token("t1"))

    assert users.delete("u1") is True

    assert tokens.get_by_id("t1") is None
    users.close()
    tokens.close()


def test_verification_code_repository_enforces_one_code_per_email(tmp_path: Path) -> None:
    repo = VerificationCodeRepository(database_path=tmp_path / "inkwell.db")
    repo.create(_code())

    with pytest.raises(ConflictError):
        repo.create(_code(code_id="c2").model_copy(update={"purpose": CodePurpose.PASSWORD_RESET}))

    assert repo.get_by_email("ann@example.com").code_id == "c1"
    repo.close()


def test_verification_code_attempts_and_expiry_sweep(tmp_path: Path) -> None:
    repo = VerificationCodeRepository(database_path=tmp_path / "inkwell.db")
    repo.create(_code())
    repo.create(_code(code_id="c2", email="old@example.com", expires_at=100))

    assert repo.increment_failed_attempts("c1") == 1
    assert repo.increment_failed_attempts("c1") == 2
    assert repo.increment_failed_attempts("missing") == 0

    removed = repo.delete_expired(1_800_000_000)

    assert removed == 1
    assert repo.get_by_email("old@example.com") is None
    assert repo.get_by_email("ann@example.com").failed_attempts == 2
    assert repo.delete("c1") is True
    assert repo.delete("c1") is False
    repo.close()


def test_refresh_token_repository_revocation(tmp_path: Path) -> None:
    db_path = tmp_path / "inkwell.db"
    users = UserRepository(database_path=db_path)
    repo = RefreshTokenRepository(database_path=db_path)
    users.create(_user())
    repo.create(_token("t1", created_at=1_700_000_000))
    repo.create(_token("t2", created_at=1_700_000_100))
    repo.create(_token("t3", created_at=1_700_000_200))

    assert [record.token_id for record in repo.list_active_by_user("u1")] == ["t3", "t2", "t1"]

    repo.revoke("t3", 1_700_000_300)
    repo.revoke("t3", 1_700_000_400)

    assert repo.get_by_id("t3").revoked_at == 1_700_000_400
    assert repo.revoke_all_for_user("u1", 1_700_000_500) == 2
    assert repo.list_active_by_user("u1") == []
    assert repo.delete_all_for_user("u1") == 3
    users.close()
    repo.close()
