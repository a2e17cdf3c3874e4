"""Catalog client interface and the normalized item types it produces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class SourceKind(str, Enum):
    CHANNEL = "channel"
    PLAYLIST = "playlist"

    @classmethod
    def parse(cls, value: str) -> SourceKind:
        try:
            return cls((value or "").lower().strip())
        except ValueError:
            raise ValueError(f"unknown source kind: {value!r} (expected channel or playlist)")


@dataclass
class CatalogItem:
    """A video as returned by the catalog, before or after classification."""

    external_id: str
    title: str
    thumbnail_url: str = ""
    duration: str = ""
    published_at: Optional[datetime] = None
    is_short: Optional[bool] = None


@dataclass
class CatalogPage:
    """One page of items plus the upstream token for the next page ('' = last)."""

    items: List[CatalogItem] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class SearchResult:
    external_id: str
    title: str
    thumbnail_url: str
    kind: SourceKind


class BaseCatalog(ABC):
    """Abstract video catalog.

    Subclasses implement the upstream calls; fetch_source_page() adds the
    channel -> uploads list resolution shared by every implementation.
    Implementations never retry: failures propagate to the caller.
    """

    @abstractmethod
    async def resolve_uploads_list(self, channel_id: str) -> str:
        """Return the uploads playlist ID of a channel, or raise NotFound."""
        ...

    @abstractmethod
    async def fetch_page(self, list_id: str, cursor: str, page_size: int) -> CatalogPage:
        """Fetch one page of a playlist. cursor == '' requests the first page."""
        ...

    async def search(self, query: str, kind: SourceKind, max_results: int = 10) -> List[SearchResult]:
        raise NotImplementedError(f"{type(self).__name__} does not support search")

    async def fetch_source_page(
        self, kind: SourceKind, external_id: str, cursor: str, page_size: int
    ) -> CatalogPage:
        """Fetch a page for a feed source. Channels are paged through their uploads list."""
        list_id = external_id
        if kind is SourceKind.CHANNEL:
            list_id = await self.resolve_uploads_list(external_id)
        return await self.fetch_page(list_id, cursor, page_size)
