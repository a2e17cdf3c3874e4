"""Version-controlled schema migrations for feeddeck."""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Tuple

logger = logging.getLogger(__name__)

# Each migration is (version, description, list_of_sql_statements)
MigrationStep = Tuple[int, str, List[str]]

INITIAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    description TEXT,
    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS feed_sources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT NOT NULL UNIQUE,
    kind TEXT NOT NULL CHECK(kind IN ('channel', 'playlist')),
    name TEXT NOT NULL,
    thumbnail_url TEXT,
    page_token TEXT,
    last_checked_at DATETIME,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS videos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER NOT NULL REFERENCES feed_sources(id) ON DELETE CASCADE,
    external_id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    thumbnail_url TEXT,
    duration TEXT,
    published_at DATETIME,
    is_short INTEGER DEFAULT 0,
    watched INTEGER DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_videos_source ON videos(source_id);
CREATE INDEX IF NOT EXISTS idx_videos_watched ON videos(watched);
"""


def _get_migrations() -> List[MigrationStep]:
    """Return ordered list of migrations."""
    return [
        (
            1,
            "Initial schema: feed_sources, videos, indexes",
            [INITIAL_SCHEMA],
        ),
        (
            2,
            "Add feed_sources.hide_shorts and unwatched/shorts listing index",
            [
                "ALTER TABLE feed_sources ADD COLUMN hide_shorts INTEGER DEFAULT 0;",
                "CREATE INDEX IF NOT EXISTS idx_videos_source_watched_short "
                "ON videos(source_id, watched, is_short);",
            ],
        ),
    ]


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        return row[0] if row and row[0] is not None else 0
    except sqlite3.OperationalError:
        return 0


def apply_migrations(db_path: str) -> int:
    """Apply all pending migrations. Returns the final schema version."""
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

        current = get_current_version(conn)
        applied = 0

        for version, description, statements in _get_migrations():
            if version <= current:
                continue

            logger.info("Applying migration v%d: %s", version, description)
            try:
                for sql in statements:
                    conn.executescript(sql)
                conn.execute(
                    "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                    (version, description),
                )
                conn.commit()
                applied += 1
            except sqlite3.Error:
                conn.rollback()
                logger.exception("Migration v%d failed", version)
                raise

        final = get_current_version(conn)
    finally:
        conn.close()

    if applied:
        logger.info("Applied %d migration(s). Schema at v%d", applied, final)
    else:
        logger.debug("Schema up to date at v%d", final)

    return final


def reset_database(db_path: str) -> None:
    """Drop all tables and re-apply migrations from scratch. USE WITH CAUTION."""
    conn = sqlite3.connect(db_path)
    try:
        tables = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        # videos references feed_sources
        conn.execute("PRAGMA foreign_keys=OFF")
        for (name,) in tables:
            conn.execute(f"DROP TABLE IF EXISTS [{name}]")
        conn.commit()
    finally:
        conn.close()

    apply_migrations(db_path)
