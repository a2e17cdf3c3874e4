"""Tests for the concurrent Shorts classifier."""

from __future__ import annotations

import asyncio
import random
from types import SimpleNamespace

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from feeddeck.classify.shorts import ShortClassifier
from feeddeck.connectors.base import CatalogItem


def items(*ids: str):
    return [CatalogItem(external_id=vid, title=vid) for vid in ids]


@pytest.fixture
async def shorts_site():
    """Fake youtube.com: /shorts/short* answers 200, /shorts/slow* hangs, others redirect."""
    hits: list = []

    async def shorts(request: web.Request) -> web.Response:
        vid = request.match_info["vid"]
        hits.append((request.method, vid))
        if vid.startswith("slow"):
            await asyncio.sleep(1.5)
        if vid.startswith("short") or vid.startswith("slow"):
            return web.Response(status=200)
        raise web.HTTPSeeOther(f"/watch?v={vid}")

    async def watch(request: web.Request) -> web.Response:
        hits.append(("watch", request.query.get("v")))
        return web.Response(status=200)

    app = web.Application()
    app.router.add_get("/shorts/{vid}", shorts)
    app.router.add_get("/watch", watch)
    server = TestServer(app)
    await server.start_server()
    yield SimpleNamespace(url=str(server.make_url("/shorts")), hits=hits)
    await server.close()


class SlowProbeClassifier(ShortClassifier):
    """Probes complete in random order; tracks probes still running."""

    def __init__(self, seed: int, delay: float = 0.02):
        super().__init__()
        self.rng = random.Random(seed)
        self.delay = delay
        self.running = 0
        self.finished: list = []

    async def is_short(self, video_id: str) -> bool:
        self.running += 1
        try:
            await asyncio.sleep(self.rng.uniform(0, self.delay))
            self.finished.append(video_id)
            return video_id.startswith("short")
        finally:
            self.running -= 1


class TestShortClassifier:
    async def test_short_vs_redirect(self, shorts_site):
        async with ShortClassifier(base_url=shorts_site.url) as classifier:
            assert await classifier.is_short("short1") is True
            assert await classifier.is_short("regular1") is False
        # Redirects are not followed
        assert all(method != "watch" for method, _ in shorts_site.hits)
        assert ("HEAD", "short1") in shorts_site.hits

    async def test_classify_batch(self, shorts_site):
        batch = items("regular1", "short1", "regular2", "short2")
        async with ShortClassifier(base_url=shorts_site.url) as classifier:
            result = await classifier.classify(batch)
        assert [i.external_id for i in result] == ["regular1", "short1", "regular2", "short2"]
        assert [i.is_short for i in result] == [False, True, False, True]
        # Input items are left untouched
        assert all(i.is_short is None for i in batch)

    async def test_classify_empty(self):
        assert await ShortClassifier().classify([]) == []

    async def test_probe_without_entered_session(self, shorts_site):
        classifier = ShortClassifier(base_url=shorts_site.url)
        assert await classifier.is_short("short9") is True

    async def test_timeout_absorbed_to_false(self, shorts_site):
        async with ShortClassifier(base_url=shorts_site.url, timeout=0.2) as classifier:
            result = await classifier.classify(items("slow1", "short1", "regular1"))
        assert [i.is_short for i in result] == [False, True, False]

    async def test_transport_failure_absorbed_to_false(self):
        classifier = ShortClassifier(base_url="http://127.0.0.1:1/shorts", timeout=1)
        result = await classifier.classify(items("short1", "short2"))
        assert [i.is_short for i in result] == [False, False]

    @pytest.mark.parametrize("seed", range(5))
    async def test_order_independent_of_completion(self, seed):
        ids = [f"short{i}" if i % 3 == 0 else f"video{i}" for i in range(20)]
        classifier = SlowProbeClassifier(seed)
        result = await classifier.classify(items(*ids))

        assert [i.external_id for i in result] == ids
        assert [i.is_short for i in result] == [vid.startswith("short") for vid in ids]
        assert classifier.running == 0

    async def test_completion_order_actually_shuffled(self):
        ids = [f"video{i}" for i in range(20)]
        classifier = SlowProbeClassifier(seed=1)
        await classifier.classify(items(*ids))
        assert sorted(classifier.finished) == sorted(ids)
        assert classifier.finished != ids

    async def test_deadline_keeps_decided_and_defaults_pending(self, shorts_site):
        loop = asyncio.get_running_loop()
        async with ShortClassifier(base_url=shorts_site.url, timeout=5) as classifier:
            result = await classifier.classify(
                items("short1", "slow1", "regular1"), deadline=loop.time() + 0.5
            )
        assert [i.is_short for i in result] == [True, False, False]

    async def test_cancellation_joins_all_probes(self):
        classifier = SlowProbeClassifier(seed=0, delay=10)
        task = asyncio.ensure_future(classifier.classify(items("a", "b", "c")))
        await asyncio.sleep(0.05)
        assert classifier.running == 3

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert classifier.running == 0
