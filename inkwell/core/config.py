"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class AuthConfig:
    """Token, OTP and password hashing settings."""

    access_token_secret: str
    refresh_token_secret: str
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60
    issuer: str = "inkwell"
    otp_ttl_seconds: int = 10 * 60
    otp_max_attempts: int = 5
    bcrypt_rounds: int = 12
    admin_email: str = ""
    admin_password: str = ""

    def __post_init__(self) -> None:
        if not self.access_token_secret or not self.refresh_token_secret:
            raise ValueError("Access and refresh token secrets are required")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("Access and refresh token secrets must differ")


@dataclass(frozen=True)
class StorageConfig:
    """Credential store location."""

    sqlite_path: str
    mongo_uri: str = ""
    mongo_db: str = "inkwell"

    def resolved_sqlite_path(self) -> Path:
        """Resolve ``sqlite_path`` against the project root, not the working directory."""
        path = Path(self.sqlite_path)
        return path if path.is_absolute() else (PROJECT_ROOT / path).resolve()


@dataclass(frozen=True)
class EmailConfig:
    """Outbound OTP email settings."""

    backend: str
    resend_api_key: str = ""
    from_email: str = "noreply@inkwell.local"
    api_url: str = "https://api.resend.com/emails"
    timeout_seconds: float = 10.0
    app_name: str = "Inkwell"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int
    cleanup_api_key: str = ""


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    storage: StorageConfig
    email: EmailConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        access_secret = (
            os.getenv("JWT_SECRET", "").strip() or "dev-insecure-access-secret"
        )
        refresh_secret = (
            os.getenv("JWT_REFRESH_SECRET", "").strip() or "dev-insecure-refresh-secret"
        )
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        issuer = os.getenv("AUTH_ISSUER", "inkwell").strip() or "inkwell"
        otp_ttl = int(os.getenv("AUTH_OTP_TTL_SECONDS", "600"))
        otp_max_attempts = int(os.getenv("AUTH_OTP_MAX_ATTEMPTS", "5"))
        bcrypt_rounds = int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", "").strip().lower()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "").strip()

        sqlite_path = (
            os.getenv("AUTH_SQLITE_PATH", "runtime/inkwell.db").strip()
            or "runtime/inkwell.db"
        )
        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "inkwell").strip() or "inkwell"

        resend_api_key = os.getenv("RESEND_API_KEY", "").strip()
        email_backend = os.getenv("EMAIL_BACKEND", "").strip().lower() or (
            "resend" if resend_api_key else "log"
        )
        from_email = (
            os.getenv("RESEND_FROM_EMAIL", "").strip() or "noreply@inkwell.local"
        )
        email_timeout = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))
        login_rate_limit_max_attempts = int(
            os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5")
        )
        login_rate_limit_window_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "300")
        )
        login_rate_limit_lock_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "600")
        )
        cleanup_api_key = os.getenv("CLEANUP_API_KEY", "").strip()

        return AppConfig(
            auth=AuthConfig(
                access_token_secret=access_secret,
                refresh_token_secret=refresh_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                otp_ttl_seconds=otp_ttl,
                otp_max_attempts=otp_max_attempts,
                bcrypt_rounds=bcrypt_rounds,
                admin_email=admin_email,
                admin_password=admin_password,
            ),
            storage=StorageConfig(
                sqlite_path=sqlite_path,
                mongo_uri=mongo_uri,
                mongo_db=mongo_db,
            ),
            email=EmailConfig(
                backend=email_backend,
                resend_api_key=resend_api_key,
                from_email=from_email,
                timeout_seconds=email_timeout,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                login_rate_limit_max_attempts=login_rate_limit_max_attempts,
                login_rate_limit_window_seconds=login_rate_limit_window_seconds,
                login_rate_limit_lock_seconds=login_rate_limit_lock_seconds,
                cleanup_api_key=cleanup_api_key,
            ),
        )
