"""Brute-force protection for public auth endpoints, backed by SQLite."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from threading import Lock

from inkwell.api.errors import RateLimitError
from inkwell.core.migrations import apply_migrations

SCOPE_LOGIN = "login"
SCOPE_FORGOT_PASSWORD = "forgot_password"


class AttemptLimiter:
    """Lock out a (scope, email, ip) principal after repeated failures."""

    def __init__(
        self,
        *,
        database_path: Path,
        max_attempts: int,
        window_seconds: int,
        lock_seconds: int,
    ) -> None:
        """Initialize limiter storage and policy parameters."""
        apply_migrations(database_path)
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1, int(window_seconds))
        self._lock_seconds = max(1, int(lock_seconds))

    @staticmethod
    def _key(scope: str, email: str, client_ip: str) -> tuple[str, str, str]:
        return scope, email.strip().lower(), client_ip.strip() or "unknown"

    def assert_allowed(self, *, scope: str, email: str, client_ip: str) -> None:
        """Raise ``RateLimitError`` while the principal is locked out."""
        now = int(time.time())
        key = self._key(scope, email, client_ip)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT first_failed_at, locked_until
                FROM auth_attempts
                WHERE scope = ? AND email = ? AND client_ip = ?
                """,
                key,
            ).fetchone()
            if row is None:
                return

            locked_until = int(row["locked_until"] or 0)
            if locked_until > now:
                raise RateLimitError(
                    f"Too many attempts. Retry after {locked_until - now} seconds."
                )

            first_failed_at = int(row["first_failed_at"] or 0)
            if first_failed_at and (now - first_failed_at) > self._window_seconds:
                self._connection.execute(
                    "DELETE FROM auth_attempts WHERE scope = ? AND email = ? AND client_ip = ?",
                    key,
                )
                self._connection.commit()

    def record_success(self, *, scope: str, email: str, client_ip: str) -> None:
        """Reset limiter state after a successful attempt."""
        with self._lock:
            self._connection.execute(
                "DELETE FROM auth_attempts WHERE scope = ? AND email = ? AND client_ip = ?",
                self._key(scope, email, client_ip),
            )
            self._connection.commit()

    def record_failure(self, *, scope: str, email: str, client_ip: str) -> None:
        """Count a failed attempt and lock once the threshold is reached."""
        now = int(time.time())
        key = self._key(scope, email, client_ip)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT failed_attempts, first_failed_at
                FROM auth_attempts
                WHERE scope = ? AND email = ? AND client_ip = ?
                """,
                key,
            ).fetchone()

            if row is None:
                failed_attempts = 1
                first_failed_at = now
            else:
                previous_first = int(row["first_failed_at"] or 0)
                if previous_first and (now - previous_first) > self._window_seconds:
                    failed_attempts = 1
                    first_failed_at = now
                else:
                    failed_attempts = int(row["failed_attempts"] or 0) + 1
                    first_failed_at = previous_first or now

            locked_until = (
                now + self._lock_seconds if failed_attempts >= self._max_attempts else 0
            )

            self._connection.execute(
                """
                INSERT INTO auth_attempts(
                  scope, email, client_ip, failed_attempts, first_failed_at, last_failed_at, locked_until
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(scope, email, client_ip) DO UPDATE SET
                  failed_attempts = excluded.failed_attempts,
                  first_failed_at = excluded.first_failed_at,
                  last_failed_at = excluded.last_failed_at,
                  locked_until = excluded.locked_until
                """,
                (*key, failed_attempts, first_failed_at, now, locked_until),
            )
            self._connection.commit()

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()
