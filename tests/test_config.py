from __future__ import annotations

from pathlib import Path

import pytest

from inkwell.core.config import PROJECT_ROOT, AppConfig, StorageConfig


def test_from_env_reads_auth_and_email_settings(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "access")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "refresh")
    monkeypatch.setenv("AUTH_OTP_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("RESEND_API_KEY", "re_live")
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://inkwell.dev, https://admin.inkwell.dev")
    monkeypatch.delenv("EMAIL_BACKEND", raising=False)

    config = AppConfig.from_env()

    assert config.auth.access_token_secret == "access"
    assert config.auth.otp_max_attempts == 3
    assert config.auth.access_token_ttl_seconds == 900
    assert config.email.backend == "resend"
    assert config.security.cors_allowed_origins == [
        "https://inkwell.dev",
        "https://admin.inkwell.dev",
    ]


def test_from_env_defaults_to_log_backend_without_api_key(monkeypatch) -> None:
    monkeypatch.delenv("RESEND_API_KEY", raising=False)
    monkeypatch.delenv("EMAIL_BACKEND", raising=False)

    assert AppConfig.from_env().email.backend == "log"


def test_from_env_rejects_shared_secret(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "same")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "same")

    with pytest.raises(ValueError):
        AppConfig.from_env()


def test_relative_sqlite_path_resolves_against_project_root(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    relative = StorageConfig(sqlite_path="runtime/inkwell.db").resolved_sqlite_path()
    absolute = StorageConfig(sqlite_path=str(tmp_path / "a.db")).resolved_sqlite_path()

    assert relative == (PROJECT_ROOT / "runtime" / "inkwell.db").resolve()
    assert absolute == tmp_path / "a.db"
