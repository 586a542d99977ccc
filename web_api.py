from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inkwell.api.http_setup import register_exception_handlers, register_http_middleware
from inkwell.api.maintenance_routes import create_maintenance_router
from inkwell.auth.email_service import EmailNotifier, build_email_notifier
from inkwell.auth.middleware import create_auth_middleware
from inkwell.auth.rate_limiter import AttemptLimiter
from inkwell.auth.repository import (
    RefreshTokenRepository,
    UserRepository,
    VerificationCodeRepository,
)
from inkwell.auth.router import create_auth_router
from inkwell.auth.service import AuthService
from inkwell.auth.tokens import TokenService
from inkwell.core.config import AppConfig
from inkwell.core.logging import setup_logging
from inkwell.core.mongo_migrations import open_mongo_database

LOGGER = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None, *, notifier: EmailNotifier | None = None
) -> FastAPI:
    """Wire stores, services and routes. Run with ``uvicorn web_api:create_app --factory``."""
    if config is None:
        load_dotenv()
        config = AppConfig.from_env()
    setup_logging(config.logging.level)

    database_path = config.storage.resolved_sqlite_path()
    mongo_db = open_mongo_database(config.storage)
    users = UserRepository(database_path=database_path, mongo_db=mongo_db)
    codes = VerificationCodeRepository(database_path=database_path, mongo_db=mongo_db)
    sessions = RefreshTokenRepository(database_path=database_path, mongo_db=mongo_db)
    rate_limiter = AttemptLimiter(
        database_path=database_path,
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
    )

    tokens = TokenService(config.auth)
    auth_service = AuthService(
        users=users,
        codes=codes,
        sessions=sessions,
        tokens=tokens,
        notifier=notifier
        or build_email_notifier(config.email, otp_ttl_seconds=config.auth.otp_ttl_seconds),
        config=config.auth,
    )
    auth_service.bootstrap_admin_user()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        for store in (users, codes, sessions, rate_limiter):
            store.close()
        if mongo_db is not None:
            mongo_db.client.close()

    app = FastAPI(title="Inkwell Auth API", version="1.0.0", lifespan=lifespan)

    app.include_router(
        create_maintenance_router(
            auth_service, cleanup_api_key=config.security.cleanup_api_key
        )
    )
    app.include_router(create_auth_router(auth_service, tokens, rate_limiter))

    # Last added runs first: CORS, then logging and size limits, then auth.
    app.middleware("http")(create_auth_middleware(tokens))
    register_http_middleware(app, security=config.security, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    LOGGER.info(
        "app_started",
        extra={"reason": "mongodb" if mongo_db is not None else "sqlite"},
    )
    return app
