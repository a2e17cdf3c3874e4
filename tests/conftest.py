"""Shared fixtures: a temporary database and in-memory catalog/classifier doubles."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import pytest

from feeddeck.connectors.base import BaseCatalog, CatalogItem, CatalogPage, SourceKind
from feeddeck.errors import NotFound, UpstreamFailure
from feeddeck.storage.db import DatabaseManager
from feeddeck.storage.models import FeedSource


def make_item(external_id: str, minutes_ago: int = 0) -> CatalogItem:
    return CatalogItem(
        external_id=external_id,
        title=f"Video {external_id}",
        thumbnail_url=f"https://i.ytimg.com/vi/{external_id}/mqdefault.jpg",
        duration="PT4M13S",
        published_at=datetime(2025, 1, 15, 12, 0) - timedelta(minutes=minutes_ago),
    )


class FakeCatalog(BaseCatalog):
    """Catalog serving pre-configured pages keyed by request token."""

    def __init__(
        self,
        pages: Optional[Dict[str, CatalogPage]] = None,
        channels: Optional[Dict[str, str]] = None,
        delay: float = 0.0,
    ):
        self.pages = pages or {}
        self.channels = channels or {}
        self.delay = delay
        self.failures: List[Exception] = []
        self.page_calls: List[tuple] = []
        self.resolve_calls: List[str] = []

    def set_pages(self, pages: Dict[str, CatalogPage]) -> None:
        self.pages = pages

    async def resolve_uploads_list(self, channel_id: str) -> str:
        self.resolve_calls.append(channel_id)
        if channel_id not in self.channels:
            raise NotFound(channel_id, kind="channel")
        return self.channels[channel_id]

    async def fetch_page(self, list_id: str, cursor: str, page_size: int) -> CatalogPage:
        self.page_calls.append((list_id, cursor, page_size))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        if cursor not in self.pages:
            raise UpstreamFailure(f"unknown page token {cursor!r}")
        page = self.pages[cursor]
        return CatalogPage(items=[CatalogItem(**vars(i)) for i in page.items], next_cursor=page.next_cursor)


class FakeClassifier:
    """Marks items whose ID starts with 's' as Shorts; records every batch."""

    def __init__(self) -> None:
        self.batches: List[List[str]] = []

    async def classify(
        self, items: Sequence[CatalogItem], deadline: Optional[float] = None
    ) -> List[CatalogItem]:
        self.batches.append([i.external_id for i in items])
        out = []
        for item in items:
            copy = CatalogItem(**vars(item))
            copy.is_short = item.external_id.startswith("s")
            out.append(copy)
        return out

    @property
    def probed(self) -> List[str]:
        return [vid for batch in self.batches for vid in batch]


@pytest.fixture
def tmp_db(tmp_path):
    """Return a path to a temporary database file."""
    return str(tmp_path / "test.db")


@pytest.fixture
async def db(tmp_db):
    """Return an initialized DatabaseManager."""
    manager = DatabaseManager(tmp_db)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def catalog():
    return FakeCatalog(channels={"UC_chan": "UU_chan"})


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def item():
    return make_item


@pytest.fixture
def page():
    def _page(ids: Sequence[str], next_cursor: str = "") -> CatalogPage:
        return CatalogPage(
            items=[make_item(vid, minutes_ago=i) for i, vid in enumerate(ids)],
            next_cursor=next_cursor,
        )
    return _page


@pytest.fixture
def add_source(db):
    async def _add(
        external_id: str = "PL_list",
        kind: SourceKind = SourceKind.PLAYLIST,
        name: str = "Test Playlist",
        hide_shorts: bool = False,
    ) -> FeedSource:
        return await db.add_source(
            FeedSource(id=None, external_id=external_id, kind=kind, name=name, hide_shorts=hide_shorts)
        )
    return _add
