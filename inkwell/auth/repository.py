"""Repositories for users, verification codes and refresh tokens.

Each repository uses MongoDB when a database handle is supplied and falls back
to the migrated SQLite file otherwise. Store-level failures are translated to
``ConflictError`` (uniqueness) or ``DatabaseError`` before leaving this module.
"""

from __future__ import annotations

import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Iterator

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from inkwell.api.errors import ConflictError, DatabaseError
from inkwell.auth.models import RefreshTokenRecord, User, VerificationCode
from inkwell.core.migrations import apply_migrations

USER_UPDATABLE_FIELDS = {
    "email",
    "username",
    "password_hash",
    "name",
    "bio",
    "avatar_url",
    "role",
    "is_active",
    "email_verified",
    "last_login_at",
}


@contextmanager
def _store_errors(
    operation: str, conflict_message: str = "Record already exists"
) -> Iterator[None]:
    """Translate driver exceptions into domain errors."""
    try:
        yield
    except (sqlite3.IntegrityError, DuplicateKeyError) as exc:
        raise ConflictError(conflict_message) from exc
    except (sqlite3.Error, PyMongoError) as exc:
        raise DatabaseError(f"{operation} failed") from exc


class _SqliteBackend:
    """Locked SQLite connection owned by one repository."""

    def __init__(self, database_path: Path) -> None:
        apply_migrations(database_path)
        self.connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self.connection.execute("PRAGMA foreign_keys = ON")
        self.lock = Lock()

    def insert(self, table: str, doc: dict[str, Any]) -> None:
        columns = ", ".join(doc)
        placeholders = ", ".join("?" for _ in doc)
        self.write(
            f"INSERT INTO {table}({columns}) VALUES ({placeholders})",
            tuple(doc.values()),
        )

    def fetch_one(self, sql: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        with self.lock:
            row = self.connection.execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        with self.lock:
            rows = self.connection.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def write(self, sql: str, params: tuple[Any, ...]) -> int:
        """Run a single write statement and return the affected row count."""
        with self.lock:
            try:
                cursor = self.connection.execute(sql, params)
            except sqlite3.Error:
                self.connection.rollback()
                raise
            self.connection.commit()
            return cursor.rowcount

    def close(self) -> None:
        with self.lock:
            self.connection.close()


class _Repository:
    """Common backend selection for the credential repositories."""

    collection_name = ""

    def __init__(self, *, database_path: Path, mongo_db: Any | None = None) -> None:
        self._mongo: Any | None = None
        self._sqlite: _SqliteBackend | None = None
        if mongo_db is not None:
            self._mongo = mongo_db[self.collection_name]
        else:
            self._sqlite = _SqliteBackend(database_path)

    @property
    def _db(self) -> _SqliteBackend:
        assert self._sqlite is not None
        return self._sqlite

    def close(self) -> None:
        """Close SQLite resources."""
        if self._sqlite is not None:
            self._sqlite.close()


class UserRepository(_Repository):
    """Persistence for platform accounts."""

    collection_name = "users"

    def create(self, user: User) -> User:
        """Insert a new user; duplicate email raises ``ConflictError``."""
        doc = user.model_dump(mode="json")
        with _store_errors("Create user", "User with this email already exists"):
            if self._mongo is not None:
                self._mongo.insert_one(dict(doc))
            else:
                self._db.insert("users", doc)
        return user

    def get_by_id(self, user_id: str) -> User | None:
        with _store_errors("Find user by id"):
            if self._mongo is not None:
                doc = self._mongo.find_one({"user_id": user_id}, {"_id": 0})
            else:
                doc = self._db.fetch_one("SELECT * FROM users WHERE user_id = ?", (user_id,))
        return User.model_validate(doc) if doc else None

    def get_by_email(self, email: str) -> User | None:
        key = email.strip().lower()
        with _store_errors("Find user by email"):
            if self._mongo is not None:
                doc = self._mongo.find_one({"email": key}, {"_id": 0})
            else:
                doc = self._db.fetch_one("SELECT * FROM users WHERE email = ?", (key,))
        return User.model_validate(doc) if doc else None

    def list_users(self) -> list[User]:
        with _store_errors("List users"):
            if self._mongo is not None:
                docs = list(self._mongo.find({}, {"_id": 0}).sort("created_at", 1))
            else:
                docs = self._db.fetch_all("SELECT * FROM users ORDER BY created_at, email")
        return [User.model_validate(doc) for doc in docs]

    def update(self, user_id: str, changes: dict[str, Any]) -> User | None:
        """Apply a partial update and return the stored user, or ``None``."""
        unknown = set(changes) - USER_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported user fields: {sorted(unknown)}")
        values = {key: (str(value) if key == "role" else value) for key, value in changes.items()}
        values["updated_at"] = int(time.time())

        with _store_errors("Update user", "User with this email already exists"):
            if self._mongo is not None:
                doc = self._mongo.find_one_and_update(
                    {"user_id": user_id},
                    {"$set": values},
                    projection={"_id": 0},
                    return_document=ReturnDocument.AFTER,
                )
                return User.model_validate(doc) if doc else None

            assignments = ", ".join(f"{key} = ?" for key in values)
            updated = self._db.write(
                f"UPDATE users SET {assignments} WHERE user_id = ?",
                (*values.values(), user_id),
            )
        return self.get_by_id(user_id) if updated else None

    def update_password_by_email(self, email: str, password_hash: str) -> bool:
        key = email.strip().lower()
        now = int(time.time())
        with _store_errors("Update user password"):
            if self._mongo is not None:
                result = self._mongo.update_one(
                    {"email": key},
                    {"$set": {"password_hash": password_hash, "updated_at": now}},
                )
                return result.matched_count > 0
            return (
                self._db.write(
                    "UPDATE users SET password_hash = ?, updated_at = ? WHERE email = ?",
                    (password_hash, now, key),
                )
                > 0
            )

    def delete(self, user_id: str) -> bool:
        """Delete a user; SQLite cascades to its refresh tokens."""
        with _store_errors("Delete user"):
            if self._mongo is not None:
                return self._mongo.delete_one({"user_id": user_id}).deleted_count > 0
            return self._db.write("DELETE FROM users WHERE user_id = ?", (user_id,)) > 0


class VerificationCodeRepository(_Repository):
    """Persistence for pending registration and password reset codes."""

    collection_name = "verification_codes"

    def create(self, code: VerificationCode) -> VerificationCode:
        """Insert a code; a second code for the same email raises ``ConflictError``."""
        doc = code.model_dump(mode="json")
        with _store_errors(
            "Create verification code", "A verification code is already pending for this email"
        ):
            if self._mongo is not None:
                self._mongo.insert_one(dict(doc))
            else:
                self._db.insert("verification_codes", doc)
        return code

    def get_by_email(self, email: str) -> VerificationCode | None:
        key = email.strip().lower()
        with _store_errors("Find verification code"):
            if self._mongo is not None:
                doc = self._mongo.find_one({"email": key}, {"_id": 0})
            else:
                doc = self._db.fetch_one(
                    "SELECT * FROM verification_codes WHERE email = ?", (key,)
                )
        return VerificationCode.model_validate(doc) if doc else None

    def increment_failed_attempts(self, code_id: str) -> int:
        """Atomically count a wrong guess and return the new total."""
        with _store_errors("Record failed OTP attempt"):
            if self._mongo is not None:
                doc = self._mongo.find_one_and_update(
                    {"code_id": code_id},
                    {"$inc": {"failed_attempts": 1}},
                    projection={"_id": 0, "failed_attempts": 1},
                    return_document=ReturnDocument.AFTER,
                )
                return int(doc["failed_attempts"]) if doc else 0

            self._db.write(
                "UPDATE verification_codes SET failed_attempts = failed_attempts + 1 WHERE code_id = ?",
                (code_id,),
            )
            row = self._db.fetch_one(
                "SELECT failed_attempts FROM verification_codes WHERE code_id = ?",
                (code_id,),
            )
        return int(row["failed_attempts"]) if row else 0

    def delete(self, code_id: str) -> bool:
        with _store_errors("Delete verification code"):
            if self._mongo is not None:
                return self._mongo.delete_one({"code_id": code_id}).deleted_count > 0
            return (
                self._db.write("DELETE FROM verification_codes WHERE code_id = ?", (code_id,))
                > 0
            )

    def delete_expired(self, now: int) -> int:
        """Remove codes whose expiry has passed and return how many went."""
        with _store_errors("Delete expired verification codes"):
            if self._mongo is not None:
                return self._mongo.delete_many({"otp_expires_at": {"$lt": now}}).deleted_count
            return self._db.write(
                "DELETE FROM verification_codes WHERE otp_expires_at < ?", (now,)
            )


class RefreshTokenRepository(_Repository):
    """Persistence for refresh token sessions."""

    collection_name = "refresh_tokens"

    def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        doc = record.model_dump(mode="json")
        with _store_errors("Create refresh token", "Refresh token already exists"):
            if self._mongo is not None:
                doc["expires_at_dt"] = datetime.fromtimestamp(record.expires_at, tz=timezone.utc)
                self._mongo.insert_one(doc)
            else:
                self._db.insert("refresh_tokens", doc)
        return record

    def get_by_id(self, token_id: str) -> RefreshTokenRecord | None:
        with _store_errors("Find refresh token"):
            if self._mongo is not None:
                doc = self._mongo.find_one({"token_id": token_id}, {"_id": 0})
            else:
                doc = self._db.fetch_one(
                    "SELECT * FROM refresh_tokens WHERE token_id = ?", (token_id,)
                )
        return RefreshTokenRecord.model_validate(doc) if doc else None

    def list_active_by_user(self, user_id: str) -> list[RefreshTokenRecord]:
        """Return the user's non-revoked sessions, newest first."""
        with _store_errors("List active refresh tokens"):
            if self._mongo is not None:
                docs = list(
                    self._mongo.find(
                        {"user_id": user_id, "revoked_at": None}, {"_id": 0}
                    ).sort("created_at", -1)
                )
            else:
                docs = self._db.fetch_all(
                    """
                    SELECT * FROM refresh_tokens
                    WHERE user_id = ? AND revoked_at IS NULL
                    ORDER BY created_at DESC
                    """,
                    (user_id,),
                )
        return [RefreshTokenRecord.model_validate(doc) for doc in docs]

    def revoke(self, token_id: str, revoked_at: int) -> None:
        """Mark one session revoked; a later revoke overwrites an earlier one."""
        with _store_errors("Revoke refresh token"):
            if self._mongo is not None:
                self._mongo.update_one(
                    {"token_id": token_id}, {"$set": {"revoked_at": revoked_at}}
                )
                return
            self._db.write(
                "UPDATE refresh_tokens SET revoked_at = ? WHERE token_id = ?",
                (revoked_at, token_id),
            )

    def revoke_all_for_user(self, user_id: str, revoked_at: int) -> int:
        with _store_errors("Revoke refresh tokens for user"):
            if self._mongo is not None:
                return self._mongo.update_many(
                    {"user_id": user_id, "revoked_at": None},
                    {"$set": {"revoked_at": revoked_at}},
                ).modified_count
            return self._db.write(
                "UPDATE refresh_tokens SET revoked_at = ? WHERE user_id = ? AND revoked_at IS NULL",
                (revoked_at, user_id),
            )

    def delete_all_for_user(self, user_id: str) -> int:
        with _store_errors("Delete refresh tokens for user"):
            if self._mongo is not None:
                return self._mongo.delete_many({"user_id": user_id}).deleted_count
            return self._db.write("DELETE FROM refresh_tokens WHERE user_id = ?", (user_id,))
