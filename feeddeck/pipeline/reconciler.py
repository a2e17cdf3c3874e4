"""Incremental sync of feed sources against the video catalog.

One sync pulls the page after the source's stored cursor, drops items
already stored (under any source), classifies the rest as Shorts or not,
persists them in catalog order and finally advances the cursor.

Re-running a sync after any failure is safe: items are deduplicated by
catalog ID, so a stale cursor only re-fetches a page whose items are
then skipped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Set, Tuple

from feeddeck.connectors.base import BaseCatalog, CatalogItem, CatalogPage
from feeddeck.errors import (
    CursorExhausted,
    DeadlineExceeded,
    PersistenceFailure,
    UpstreamFailure,
)
from feeddeck.pipeline.cursor import PageCursor
from feeddeck.storage.models import FeedSource, SyncResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class ItemStore(Protocol):
    """Item persistence the reconciler depends on."""

    async def item_exists(self, external_id: str) -> bool:
        ...

    async def create_item(self, source_id: int, item: CatalogItem) -> int:
        ...


class CursorStore(Protocol):
    """Cursor persistence the reconciler depends on."""

    async def get_cursor(self, source_id: int) -> PageCursor:
        ...

    async def set_cursor(self, source_id: int, page_cursor: PageCursor) -> None:
        ...


class SyncStore(ItemStore, CursorStore, Protocol):
    async def mark_checked(self, source_id: int, at: Optional[datetime] = None) -> None:
        ...


class Classifier(Protocol):
    async def classify(
        self, items: Sequence[CatalogItem], deadline: Optional[float] = None
    ) -> List[CatalogItem]:
        ...


class SyncReconciler:
    """Reconciles catalog pages into local storage.

    Usage:
        reconciler = SyncReconciler(catalog, classifier, db)
        result = await reconciler.sync(source)
    """

    def __init__(
        self,
        catalog: BaseCatalog,
        classifier: Classifier,
        store: SyncStore,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.catalog = catalog
        self.classifier = classifier
        self.store = store
        self.page_size = page_size

    async def sync(self, source: FeedSource, timeout: Optional[float] = None) -> SyncResult:
        """Pull the next remote page for source and advance its cursor.

        Raises NotFound / UpstreamFailure before anything is written,
        PersistenceFailure after a partial write, CursorExhausted when the
        source has no more pages and DeadlineExceeded when timeout expires
        before classification starts. Probes cut off by the deadline count
        as not-short and the page is still persisted. The cursor only moves
        after a fully persisted page.
        """
        if source.id is None:
            raise ValueError("source must be stored before syncing")
        t0 = time.monotonic()
        deadline = self._deadline(timeout)

        cursor = await self.store.get_cursor(source.id)
        if cursor.is_exhausted:
            raise CursorExhausted(source.id)

        page = await self._fetch(source, cursor.request_token, deadline)
        result = await self._reconcile(source, page, deadline)

        new_cursor = cursor.advance(page.next_cursor)
        try:
            await self.store.set_cursor(source.id, new_cursor)
            await self.store.mark_checked(source.id)
        except Exception as e:
            raise PersistenceFailure(
                f"saving cursor for source {source.id} failed: {e}", inserted=result.inserted
            ) from e
        source.cursor = new_cursor
        result.cursor = new_cursor
        result.duration_seconds = time.monotonic() - t0

        logger.info(
            "Source %s (%s): fetched=%d, inserted=%d, dups=%d, shorts=%d, cursor %s -> %s",
            source.id, source.name, result.fetched, result.inserted,
            result.duplicates, result.shorts, cursor, new_cursor,
        )
        return result

    async def refresh(self, source: FeedSource, timeout: Optional[float] = None) -> SyncResult:
        """Pull the first remote page for source without touching its cursor.

        Picks up uploads newer than everything stored, including for
        sources whose cursor is exhausted.
        """
        if source.id is None:
            raise ValueError("source must be stored before refreshing")
        t0 = time.monotonic()
        deadline = self._deadline(timeout)

        page = await self._fetch(source, "", deadline)
        result = await self._reconcile(source, page, deadline)
        try:
            await self.store.mark_checked(source.id)
        except Exception as e:
            raise PersistenceFailure(
                f"marking source {source.id} checked failed: {e}", inserted=result.inserted
            ) from e
        result.cursor = source.cursor
        result.duration_seconds = time.monotonic() - t0

        logger.info(
            "Refreshed source %s (%s): fetched=%d, inserted=%d, dups=%d",
            source.id, source.name, result.fetched, result.inserted, result.duplicates,
        )
        return result

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return deadline - asyncio.get_running_loop().time()

    async def _fetch(self, source: FeedSource, token: str, deadline: Optional[float]) -> CatalogPage:
        """Fetch one page; a deadline is applied as a timeout on the whole call."""
        fetch = self.catalog.fetch_source_page(
            source.kind, source.external_id, token, self.page_size
        )
        remaining = self._remaining(deadline)
        if remaining is None:
            return await fetch
        try:
            return await asyncio.wait_for(fetch, timeout=max(0.0, remaining))
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(
                f"page fetch for source {source.id} exceeded the sync deadline"
            ) from e

    async def _reconcile(
        self, source: FeedSource, page: CatalogPage, deadline: Optional[float]
    ) -> SyncResult:
        assert source.id is not None
        result = SyncResult(source_id=source.id, fetched=len(page.items))

        fresh, duplicates = await self._filter_new(page.items)
        result.duplicates = duplicates
        if not fresh:
            return result

        remaining = self._remaining(deadline)
        if remaining is not None and remaining <= 0:
            raise DeadlineExceeded(
                f"deadline passed before classifying {len(fresh)} items for source {source.id}",
                stage="classify",
            )

        # Probes still pending at the deadline come back as not-short
        classified = await self.classifier.classify(fresh, deadline=deadline)
        result.shorts = sum(1 for item in classified if item.is_short)

        for item in classified:
            try:
                await self.store.create_item(source.id, item)
            except Exception as e:
                logger.error(
                    "Persisting %s for source %s failed after %d inserts: %s",
                    item.external_id, source.id, result.inserted, e,
                )
                raise PersistenceFailure(
                    f"saving {item.external_id} failed: {e}",
                    external_id=item.external_id,
                    inserted=result.inserted,
                ) from e
            result.inserted += 1
        return result

    async def _filter_new(self, items: Sequence[CatalogItem]) -> Tuple[List[CatalogItem], int]:
        """Items not yet stored, in page order, and the number dropped."""
        seen: Set[str] = set()
        fresh: List[CatalogItem] = []
        dups = 0
        for item in items:
            if item.external_id in seen or await self.store.item_exists(item.external_id):
                dups += 1
                continue
            seen.add(item.external_id)
            fresh.append(item)
        return fresh, dups
