"""Database migration runner.

Migrations are SQL files in creditpulse/migrations/ named NNN_description.sql.
Each migration is applied exactly once and records itself in _schema_version.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from creditpulse.storage.database import Database

logger = logging.getLogger(__name__)

MIGRATION_PATTERN = re.compile(r"^(\d{3})_.*\.sql$")
MIGRATION_DIR = Path(__file__).parent.parent / "migrations"


def discover_migrations(
    migration_dir: Path = MIGRATION_DIR,
) -> list[tuple[int, str, str]]:
    """Find all migration files and return (version, name, sql) tuples."""
    if not migration_dir.exists():
        logger.warning("Migration directory not found: %s", migration_dir)
        return []

    migrations = []
    for sql_file in sorted(migration_dir.glob("*.sql")):
        match = MIGRATION_PATTERN.match(sql_file.name)
        if match:
            migrations.append((int(match.group(1)), sql_file.name, sql_file.read_text()))
    return migrations


def ensure_schema(db: Database) -> int:
    """Apply all pending migrations. Returns the resulting schema version."""
    current = db.schema_version()
    applied = 0

    for version, name, sql in discover_migrations():
        if version <= current:
            continue
        logger.info("Applying migration %s (v%d -> v%d)", name, current, version)
        try:
            db.executescript(sql)
            db.execute(
                "INSERT INTO _schema_version (version, name) VALUES (?, ?)",
                (version, name),
            )
            db.conn.commit()
        except Exception as e:
            logger.error("Migration %s failed: %s", name, e)
            raise RuntimeError(f"Migration {name} failed: {e}") from e
        applied += 1
        current = version

    if applied:
        logger.info("Applied %d migration(s). Schema version: %d", applied, current)
    else:
        logger.debug("Schema up to date (version %d)", current)
    return current
