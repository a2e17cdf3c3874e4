"""Run syncs for one or many sources with a caller-side retry policy.

The reconciler never retries. This runner retries upstream failures with
exponential backoff, records every other failure on the SyncResult, and
skips sources whose cursor is exhausted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feeddeck.errors import FeedDeckError, UpstreamFailure
from feeddeck.pipeline.reconciler import SyncReconciler
from feeddeck.storage.models import FeedSource, SyncResult, SyncSummary

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 4
DEFAULT_ATTEMPTS = 3


class SyncRunner:
    """Syncs sources through a reconciler, retrying upstream failures.

    Usage:
        runner = SyncRunner(reconciler, attempts=3)
        summary = await runner.sync_all(sources)
    """

    def __init__(
        self,
        reconciler: SyncReconciler,
        attempts: int = DEFAULT_ATTEMPTS,
        timeout: Optional[float] = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        wait_min: float = 2.0,
        wait_max: float = 30.0,
    ):
        self.reconciler = reconciler
        self.attempts = attempts
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.wait_min = wait_min
        self.wait_max = wait_max

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(UpstreamFailure),
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, min=self.wait_min, max=self.wait_max),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def sync(self, source: FeedSource) -> SyncResult:
        """Sync one source, retrying upstream failures. Other errors propagate."""
        async for attempt in self._retrying():
            with attempt:
                return await self.reconciler.sync(source, timeout=self.timeout)
        raise AssertionError("unreachable")  # pragma: no cover

    async def refresh(self, source: FeedSource) -> SyncResult:
        async for attempt in self._retrying():
            with attempt:
                return await self.reconciler.refresh(source, timeout=self.timeout)
        raise AssertionError("unreachable")  # pragma: no cover

    async def sync_all(self, sources: List[FeedSource], refresh: bool = False) -> SyncSummary:
        """Sync (or refresh) every source; failures are recorded, not raised."""
        summary = SyncSummary()
        t0 = time.monotonic()

        if not refresh:
            skipped = [s for s in sources if s.cursor.is_exhausted]
            for s in skipped:
                logger.info("Skipping source %s (%s): no more pages", s.id, s.name)
            sources = [s for s in sources if not s.cursor.is_exhausted]
        if not sources:
            logger.warning("No sources to sync")
            return summary

        sem = asyncio.Semaphore(self.max_concurrent)
        results = await asyncio.gather(
            *[self._run_one(source, sem, refresh) for source in sources]
        )
        for result in results:
            summary.add(result)

        summary.duration_seconds = time.monotonic() - t0
        logger.info(
            "Sync complete: %d fetched, %d inserted, %d duplicates, %d errors in %.1fs",
            summary.total_fetched,
            summary.total_inserted,
            summary.total_duplicates,
            summary.total_errors,
            summary.duration_seconds,
        )
        return summary

    async def _run_one(self, source: FeedSource, sem: asyncio.Semaphore, refresh: bool) -> SyncResult:
        assert source.id is not None
        t0 = time.monotonic()
        async with sem:
            try:
                if refresh:
                    return await self.refresh(source)
                return await self.sync(source)
            except FeedDeckError as e:
                logger.error("Source %s (%s) failed: %s", source.id, source.name, e)
                return SyncResult(
                    source_id=source.id,
                    inserted=getattr(e, "inserted", 0),
                    cursor=source.cursor,
                    duration_seconds=time.monotonic() - t0,
                    error_message=str(e),
                )
