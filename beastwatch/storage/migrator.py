"""Auto-migration runner: applies pending SQL migrations on startup.

Discovers sql/migrations/*.sql files, tracks applied versions in
beastwatch.schema_migrations, and executes pending ones in order.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent.parent / "sql" / "migrations"

_BOOTSTRAP_SQL = """
CREATE SCHEMA IF NOT EXISTS beastwatch;
CREATE TABLE IF NOT EXISTS beastwatch.schema_migrations (
    version    VARCHAR(20) PRIMARY KEY,
    name       VARCHAR(255) NOT NULL,
    checksum   VARCHAR(64) NOT NULL,
    applied_at TIMESTAMPTZ DEFAULT now()
);
"""


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[tuple[str, Path]]:
    """Return (version, path) pairs sorted by file name (e.g. 001_cooldowns.sql)."""
    if not directory.is_dir():
        return []
    return [(path.stem.split("_", 1)[0], path) for path in sorted(directory.glob("*.sql"))]


async def run_migrations(engine: AsyncEngine, directory: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending SQL migrations and return list of newly applied names."""
    migrations = discover_migrations(directory)
    if not migrations:
        logger.debug("No migrations found at %s", directory)
        return []

    applied: list[str] = []
    async with engine.begin() as conn:
        # Self-bootstrap: asyncpg runs one statement per execute
        for statement in filter(None, (s.strip() for s in _BOOTSTRAP_SQL.split(";"))):
            await conn.execute(text(statement))

        result = await conn.execute(
            text("SELECT version FROM beastwatch.schema_migrations")
        )
        existing = {row[0] for row in result}

        for version, path in migrations:
            if version in existing:
                continue

            sql = path.read_text(encoding="utf-8")
            checksum = hashlib.sha256(sql.encode()).hexdigest()

            logger.info("Applying migration %s ...", path.name)
            for statement in filter(None, (s.strip() for s in sql.split(";"))):
                await conn.execute(text(statement))
            await conn.execute(
                text(
                    "INSERT INTO beastwatch.schema_migrations (version, name, checksum) "
                    "VALUES (:version, :name, :checksum)"
                ),
                {"version": version, "name": path.stem, "checksum": checksum},
            )
            applied.append(path.stem)
            logger.info("Migration %s applied", path.name)

    if applied:
        logger.info("Migrations applied: %s", applied)
    else:
        logger.debug("All migrations up to date")

    return applied
