"""SQLite schema migrations for the credential store."""

from inkwell.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
