"""Short-form video classification by redirect probing.

A video is a Short when https://www.youtube.com/shorts/<id> answers without
redirecting; regular videos are redirected to /watch. Every item of a
batch is probed concurrently, each task writing its own result slot, and
the batch call returns once every task has finished.

There is no concurrency cap. Batches come from a single catalog page
(at most 50 items, 20 by default); a much larger batch would need a
semaphore here.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, List, Optional, Sequence

import aiohttp

from feeddeck.connectors.base import CatalogItem

logger = logging.getLogger(__name__)

DEFAULT_SHORTS_URL = "https://www.youtube.com/shorts"
DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


class ShortClassifier:
    """Annotate CatalogItems with is_short.

    Usage:
        async with ShortClassifier() as classifier:
            items = await classifier.classify(items)
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_SHORTS_URL,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> ShortClassifier:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self.user_agent})
            self._owns_session = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def probe_url(self, video_id: str) -> str:
        return f"{self.base_url}/{video_id}"

    async def is_short(self, video_id: str) -> bool:
        """Probe one video. Any failure counts as not-short."""
        url = self.probe_url(video_id)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            if self._session is not None:
                return await self._probe(self._session, url, timeout)
            async with aiohttp.ClientSession(headers={"User-Agent": self.user_agent}) as session:
                return await self._probe(session, url, timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug("Shorts probe failed for %s: %r", video_id, e)
            return False

    async def _probe(self, session: aiohttp.ClientSession, url: str, timeout: aiohttp.ClientTimeout) -> bool:
        async with session.head(url, allow_redirects=False, timeout=timeout) as resp:
            # 200 = Short; 303 to /watch = regular video
            return 200 <= resp.status < 300

    async def classify(
        self,
        items: Sequence[CatalogItem],
        deadline: Optional[float] = None,
    ) -> List[CatalogItem]:
        """Return copies of items with is_short set, in input order.

        deadline is an event-loop time; probes still running then are
        cancelled and their items stay not-short. Cancelling this call
        cancels and joins every probe before the cancellation propagates.
        """
        if not items:
            return []

        slots = [False] * len(items)

        async def run(idx: int, video_id: str) -> None:
            slots[idx] = await self.is_short(video_id)

        tasks = [
            asyncio.ensure_future(run(i, item.external_id))
            for i, item in enumerate(items)
        ]
        loop = asyncio.get_running_loop()
        try:
            timeout = None if deadline is None else max(0.0, deadline - loop.time())
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                logger.warning(
                    "Shorts classification deadline reached with %d/%d probes pending",
                    len(pending), len(tasks),
                )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        shorts = sum(slots)
        logger.debug("Classified %d items: %d shorts", len(items), shorts)
        return [dataclasses.replace(item, is_short=slot) for item, slot in zip(items, slots)]
