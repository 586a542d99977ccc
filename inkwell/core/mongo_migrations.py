"""Versioned MongoDB index migrations for credential collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from inkwell.core.config import StorageConfig
from inkwell.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20261001_01_credential_indexes(db: Any) -> None:
    db["users"].create_index("user_id", unique=True)
    db["users"].create_index("email", unique=True)
    db["verification_codes"].create_index("code_id", unique=True)
    db["verification_codes"].create_index("email", unique=True)
    db["verification_codes"].create_index("otp_expires_at")
    db["refresh_tokens"].create_index("token_id", unique=True)
    db["refresh_tokens"].create_index(
        [("user_id", pymongo.ASCENDING), ("revoked_at", pymongo.ASCENDING)]
    )


def _migration_20261001_02_refresh_token_ttl(db: Any) -> None:
    db["refresh_tokens"].create_index(
        "expires_at_dt",
        expireAfterSeconds=0,
        name="idx_refresh_tokens_expires_at_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20261001_01_credential_indexes", _migration_20261001_01_credential_indexes),
    ("20261001_02_refresh_token_ttl", _migration_20261001_02_refresh_token_ttl),
]


def apply_mongo_migrations(db: Any) -> None:
    """Apply pending index migrations to an open MongoDB database."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )


def open_mongo_database(config: StorageConfig) -> Any | None:
    """Connect and migrate MongoDB when configured, ``None`` to use SQLite."""
    if not config.mongo_uri:
        return None
    client: Any = pymongo.MongoClient(config.mongo_uri, serverSelectionTimeoutMS=3000)
    try:
        client.admin.command("ping")
        db = client[config.mongo_db]
        apply_mongo_migrations(db)
    except PyMongoError:
        LOGGER.warning("mongo_unavailable", extra={"reason": "falling back to sqlite"})
        client.close()
        return None
    return db
