"""SQLite migration runner for the notification outbox."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"

LOGGER = logging.getLogger(__name__)


def apply_migrations(database_path: Path) -> list[str]:
    """Apply pending SQL migrations in name order and return the ids applied now."""
    database_path.parent.mkdir(parents=True, exist_ok=True)
    applied: list[str] = []
    connection = sqlite3.connect(str(database_path))
    try:
        connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
              migration_id TEXT PRIMARY KEY,
              applied_at INTEGER NOT NULL
            )
            """
        )
        done = {
            row[0]
            for row in connection.execute("SELECT migration_id FROM schema_migrations")
        }
        for migration_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
            if migration_file.name in done:
                continue
            connection.executescript(migration_file.read_text(encoding="utf-8"))
            connection.execute(
                "INSERT INTO schema_migrations(migration_id, applied_at) VALUES (?, strftime('%s','now'))",
                (migration_file.name,),
            )
            applied.append(migration_file.name)
        connection.commit()
    finally:
        connection.close()

    if applied:
        LOGGER.info("schema_migrations_applied", extra={"path": str(database_path)})
    return applied
