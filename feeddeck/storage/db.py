"""Async SQLite database manager for feed sources and videos (WAL mode)."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import aiosqlite

from feeddeck.connectors.base import CatalogItem
from feeddeck.errors import SourceNotFound
from feeddeck.pipeline.cursor import PageCursor
from feeddeck.storage.migrations import apply_migrations
from feeddeck.storage.models import FeedSource, Video

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Async SQLite manager; the persistence boundary of the sync engine.

    Implements the item store (item_exists/create_item) and the cursor
    store (get_cursor/set_cursor) the reconciler depends on. Writes are
    serialised through one lock (single writer).

    Usage:
        db = DatabaseManager("data/feeddeck.db")
        await db.initialize()
        # ... use db ...
        await db.close()
    """

    def __init__(self, db_path: str, cache_size_mb: int = 16):
        self.db_path = db_path
        self.cache_size_mb = cache_size_mb
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database, apply migrations, and configure pragmas."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Apply migrations synchronously (schema changes)
        apply_migrations(self.db_path)

        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute(f"PRAGMA cache_size=-{self.cache_size_mb * 1000}")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")

        logger.info("Database initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Acquire write lock and begin a transaction."""
        assert self._conn is not None, "Database not initialized"
        async with self._write_lock:
            await self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    # --- Sources ---

    async def add_source(self, source: FeedSource) -> FeedSource:
        """Insert a source; an already-followed external ID returns the stored row."""
        assert self._conn is not None
        async with self._transaction() as conn:
            await conn.execute(
                """INSERT INTO feed_sources
                       (external_id, kind, name, thumbnail_url, page_token, hide_shorts)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(external_id) DO NOTHING""",
                source.to_row(),
            )
        stored = await self.get_source_by_external_id(source.external_id)
        assert stored is not None
        return stored

    async def get_source(self, source_id: int) -> Optional[FeedSource]:
        """Get a source by local ID."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            "SELECT * FROM feed_sources WHERE id = ?", (source_id,)
        )
        row = await cursor.fetchone()
        return FeedSource.from_row(dict(row)) if row else None

    async def get_source_by_external_id(self, external_id: str) -> Optional[FeedSource]:
        assert self._conn is not None
        cursor = await self._conn.execute(
            "SELECT * FROM feed_sources WHERE external_id = ?", (external_id,)
        )
        row = await cursor.fetchone()
        return FeedSource.from_row(dict(row)) if row else None

    async def require_source(self, source_id: int) -> FeedSource:
        source = await self.get_source(source_id)
        if source is None:
            raise SourceNotFound(source_id)
        return source

    async def list_sources(self) -> List[FeedSource]:
        """All sources in the order they were added."""
        assert self._conn is not None
        cursor = await self._conn.execute("SELECT * FROM feed_sources ORDER BY id")
        rows = await cursor.fetchall()
        return [FeedSource.from_row(dict(r)) for r in rows]

    async def delete_source(self, source_id: int) -> bool:
        """Delete a source and (by cascade) its videos."""
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM feed_sources WHERE id = ?", (source_id,)
            )
            return cursor.rowcount > 0

    async def set_hide_shorts(self, source_id: int, hide: bool) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE feed_sources SET hide_shorts = ? WHERE id = ?",
                (int(hide), source_id),
            )

    async def mark_checked(self, source_id: int, at: Optional[datetime] = None) -> None:
        """Record when the source was last synced."""
        at = at or datetime.utcnow()
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE feed_sources SET last_checked_at = ? WHERE id = ?",
                (at.isoformat(), source_id),
            )

    # --- Cursor store ---

    async def get_cursor(self, source_id: int) -> PageCursor:
        """Stored remote paging position of a source."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            "SELECT page_token FROM feed_sources WHERE id = ?", (source_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise SourceNotFound(source_id)
        return PageCursor.decode(row["page_token"])

    async def set_cursor(self, source_id: int, page_cursor: PageCursor) -> None:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE feed_sources SET page_token = ? WHERE id = ?",
                (page_cursor.encode(), source_id),
            )
            if cursor.rowcount == 0:
                raise SourceNotFound(source_id)

    # --- Videos ---

    async def item_exists(self, external_id: str) -> bool:
        """True when a video with this catalog ID is stored under any source."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            "SELECT 1 FROM videos WHERE external_id = ?", (external_id,)
        )
        return await cursor.fetchone() is not None

    async def create_item(self, source_id: int, item: CatalogItem) -> int:
        """Persist one classified catalog item. Returns the new row ID."""
        video = Video.from_catalog(source_id, item)
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """INSERT INTO videos
                       (source_id, external_id, title, thumbnail_url, duration,
                        published_at, is_short)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                video.to_row(),
            )
            return cursor.lastrowid or 0

    async def get_video(self, external_id: str) -> Optional[Video]:
        assert self._conn is not None
        cursor = await self._conn.execute(
            "SELECT * FROM videos WHERE external_id = ?", (external_id,)
        )
        row = await cursor.fetchone()
        return Video.from_row(dict(row)) if row else None

    def _video_filter(self, unwatched_only: bool, hide_shorts: bool) -> str:
        conditions = ["source_id = ?"]
        if unwatched_only:
            conditions.append("watched = 0")
        if hide_shorts:
            conditions.append("is_short = 0")
        return " AND ".join(conditions)

    async def list_videos(
        self,
        source_id: int,
        limit: int = 10,
        offset: int = 0,
        unwatched_only: bool = True,
        hide_shorts: bool = False,
    ) -> List[Video]:
        """Videos of a source in insertion order (catalog order within and across pages)."""
        assert self._conn is not None
        where = self._video_filter(unwatched_only, hide_shorts)
        cursor = await self._conn.execute(
            f"SELECT * FROM videos WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
            (source_id, limit, offset),
        )
        rows = await cursor.fetchall()
        return [Video.from_row(dict(r)) for r in rows]

    async def count_videos(
        self,
        source_id: Optional[int] = None,
        unwatched_only: bool = False,
        hide_shorts: bool = False,
    ) -> int:
        """Count videos, optionally for one source."""
        assert self._conn is not None
        if source_id is None:
            cursor = await self._conn.execute("SELECT COUNT(*) FROM videos")
        else:
            where = self._video_filter(unwatched_only, hide_shorts)
            cursor = await self._conn.execute(
                f"SELECT COUNT(*) FROM videos WHERE {where}", (source_id,)
            )
        row = await cursor.fetchone()
        return row[0] if row else 0

    # --- Maintenance ---

    async def vacuum(self) -> None:
        """Run VACUUM to reclaim space and defragment."""
        assert self._conn is not None
        async with self._write_lock:
            await self._conn.execute("VACUUM")

    async def integrity_check(self) -> bool:
        assert self._conn is not None
        cursor = await self._conn.execute("PRAGMA integrity_check")
        row = await cursor.fetchone()
        return row is not None and row[0] == "ok"

    async def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        assert self._conn is not None
        stats: Dict[str, Any] = {}

        cursor = await self._conn.execute("SELECT COUNT(*) FROM feed_sources")
        row = await cursor.fetchone()
        stats["total_sources"] = row[0] if row else 0

        cursor = await self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(is_short), 0), COALESCE(SUM(watched), 0) FROM videos"
        )
        row = await cursor.fetchone()
        stats["total_videos"] = row[0] if row else 0
        stats["total_shorts"] = row[1] if row else 0
        stats["total_watched"] = row[2] if row else 0

        cursor = await self._conn.execute(
            """SELECT s.id, COUNT(v.id) AS cnt
               FROM feed_sources s LEFT JOIN videos v ON v.source_id = s.id
               GROUP BY s.id ORDER BY cnt DESC"""
        )
        stats["videos_by_source"] = {
            r["id"]: r["cnt"] for r in await cursor.fetchall()
        }

        cursor = await self._conn.execute(
            "SELECT page_count * page_size as size FROM pragma_page_count(), pragma_page_size()"
        )
        row = await cursor.fetchone()
        stats["db_size_bytes"] = row[0] if row else 0

        return stats
