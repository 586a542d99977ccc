#!/usr/bin/env python3
"""One-shot sweep of expired registration and password reset codes."""

from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from inkwell.auth.repository import VerificationCodeRepository
from inkwell.core.config import AppConfig
from inkwell.core.mongo_migrations import open_mongo_database


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Delete verification codes whose OTP has expired."
    )
    parser.add_argument(
        "--sqlite-path",
        type=Path,
        default=None,
        help="SQLite database to sweep (defaults to AUTH_SQLITE_PATH).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the sweep and print how many codes were removed."""
    args = _parse_args(argv)
    load_dotenv()
    config = AppConfig.from_env()
    database_path = args.sqlite_path or config.storage.resolved_sqlite_path()

    mongo_db = None
    repository = None
    try:
        mongo_db = open_mongo_database(config.storage)
        repository = VerificationCodeRepository(database_path=database_path, mongo_db=mongo_db)
        removed = repository.delete_expired(int(time.time()))
        print(f"Backend: {'mongodb' if mongo_db is not None else database_path}")
        print(f"Removed expired codes: {removed}")
        print(f"Completed at: {datetime.now(timezone.utc).isoformat()}")
        return 0
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if repository is not None:
            repository.close()
        if mongo_db is not None:
            mongo_db.client.close()


if __name__ == "__main__":
    raise SystemExit(main())
