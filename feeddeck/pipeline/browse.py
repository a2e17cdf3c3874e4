"""Column browsing over stored videos, with remote "load more".

Two pagination axes meet here. The local axis is a plain offset/limit
over videos already stored for a source. The remote axis is the source's
PageCursor, and is only consulted once the local axis has nothing more
to show.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from feeddeck.pipeline.reconciler import SyncReconciler
from feeddeck.storage.db import DatabaseManager
from feeddeck.storage.models import FeedSource, SyncResult, Video

logger = logging.getLogger(__name__)

COLUMN_PAGE_SIZE = 10


@dataclass
class ColumnPage:
    """One page of a source's column."""

    source_id: int
    videos: List[Video] = field(default_factory=list)
    has_more_local: bool = False
    can_fetch_more: bool = False
    next_offset: int = 0
    sync: Optional[SyncResult] = None


class FeedBrowser:
    """Local offset paging plus remote load-more for feed sources."""

    def __init__(
        self,
        db: DatabaseManager,
        reconciler: Optional[SyncReconciler] = None,
        page_size: int = COLUMN_PAGE_SIZE,
        sync_timeout: Optional[float] = None,
    ):
        self.db = db
        self.reconciler = reconciler
        self.page_size = page_size
        self.sync_timeout = sync_timeout

    async def column(self, source_id: int, offset: int = 0, limit: Optional[int] = None) -> ColumnPage:
        """Stored unwatched videos of a source starting at offset."""
        source = await self.db.require_source(source_id)
        return await self._local_page(source, offset, limit or self.page_size)

    async def can_fetch_more(self, source_id: int) -> bool:
        """Whether the remote catalog may still have pages for this source."""
        cursor = await self.db.get_cursor(source_id)
        return cursor.can_fetch_more

    async def load_more(self, source_id: int, limit: Optional[int] = None) -> ColumnPage:
        """Pull the next remote page and return the videos it made visible.

        Exhausted sources never reach the reconciler; the current local
        tail is returned instead.
        """
        limit = limit or self.page_size
        source = await self.db.require_source(source_id)
        existing = await self.db.count_videos(
            source_id, unwatched_only=True, hide_shorts=source.hide_shorts
        )

        if not source.cursor.can_fetch_more:
            logger.debug("Source %s is exhausted; not fetching", source_id)
            return await self._local_page(source, existing, limit)

        if self.reconciler is None:
            raise RuntimeError("FeedBrowser needs a reconciler to load more")
        result = await self.reconciler.sync(source, timeout=self.sync_timeout)
        page = await self._local_page(source, existing, limit)
        page.sync = result
        return page

    async def _local_page(self, source: FeedSource, offset: int, limit: int) -> ColumnPage:
        assert source.id is not None
        videos = await self.db.list_videos(
            source.id,
            limit=limit + 1,
            offset=offset,
            unwatched_only=True,
            hide_shorts=source.hide_shorts,
        )
        has_more_local = len(videos) > limit
        if has_more_local:
            videos = videos[:limit]

        can_fetch_more = False
        if not has_more_local:
            can_fetch_more = source.cursor.can_fetch_more

        return ColumnPage(
            source_id=source.id,
            videos=videos,
            has_more_local=has_more_local,
            can_fetch_more=can_fetch_more,
            next_offset=offset + len(videos),
        )
