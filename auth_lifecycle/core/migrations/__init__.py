"""SQLite schema migrations for runtime state."""

from auth_lifecycle.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
