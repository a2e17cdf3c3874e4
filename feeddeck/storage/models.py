"""Data models for the feeddeck storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from feeddeck.connectors.base import CatalogItem, SourceKind
from feeddeck.pipeline.cursor import PageCursor


@dataclass
class FeedSource:
    """A followed channel or playlist and its remote paging position."""

    id: Optional[int]
    external_id: str
    kind: SourceKind
    name: str
    thumbnail_url: str = ""
    cursor: PageCursor = field(default_factory=PageCursor.unfetched)
    hide_shorts: bool = False
    last_checked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> FeedSource:
        """Create a FeedSource from a config.yaml `sources` entry."""
        return cls(
            id=None,
            external_id=cfg["id"],
            kind=SourceKind.parse(cfg.get("type", "channel")),
            name=cfg.get("name") or cfg["id"],
            thumbnail_url=cfg.get("thumbnail_url") or "",
            hide_shorts=bool(cfg.get("hide_shorts", False)),
        )

    def to_row(self) -> tuple:
        return (
            self.external_id,
            self.kind.value,
            self.name,
            self.thumbnail_url or None,
            self.cursor.encode(),
            int(self.hide_shorts),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> FeedSource:
        return cls(
            id=row["id"],
            external_id=row["external_id"],
            kind=SourceKind(row["kind"]),
            name=row["name"],
            thumbnail_url=row.get("thumbnail_url") or "",
            cursor=PageCursor.decode(row.get("page_token")),
            hide_shorts=bool(row.get("hide_shorts", 0)),
            last_checked_at=_parse_ts(row.get("last_checked_at")),
            created_at=_parse_ts(row.get("created_at")),
        )


@dataclass
class Video:
    """A persisted catalog item attached to a feed source."""

    id: Optional[int]
    source_id: int
    external_id: str
    title: str
    thumbnail_url: str = ""
    duration: str = ""
    published_at: Optional[datetime] = None
    is_short: bool = False
    watched: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_catalog(cls, source_id: int, item: CatalogItem) -> Video:
        return cls(
            id=None,
            source_id=source_id,
            external_id=item.external_id,
            title=item.title,
            thumbnail_url=item.thumbnail_url,
            duration=item.duration,
            published_at=item.published_at,
            is_short=bool(item.is_short),
        )

    def to_row(self) -> tuple:
        return (
            self.source_id,
            self.external_id,
            self.title,
            self.thumbnail_url or None,
            self.duration or None,
            self.published_at.isoformat() if self.published_at else None,
            int(self.is_short),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Video:
        return cls(
            id=row["id"],
            source_id=row["source_id"],
            external_id=row["external_id"],
            title=row["title"],
            thumbnail_url=row.get("thumbnail_url") or "",
            duration=row.get("duration") or "",
            published_at=_parse_ts(row.get("published_at")),
            is_short=bool(row.get("is_short", 0)),
            watched=bool(row.get("watched", 0)),
            created_at=_parse_ts(row.get("created_at")),
        )


@dataclass
class SyncResult:
    """Result of one sync or refresh of a feed source."""

    source_id: int
    fetched: int = 0
    inserted: int = 0
    duplicates: int = 0
    shorts: int = 0
    cursor: Optional[PageCursor] = None
    duration_seconds: float = 0.0
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error_message is None


@dataclass
class SyncSummary:
    """Aggregate result from syncing several sources."""

    results: List[SyncResult] = field(default_factory=list)
    total_fetched: int = 0
    total_inserted: int = 0
    total_duplicates: int = 0
    total_errors: int = 0
    duration_seconds: float = 0.0

    def add(self, result: SyncResult) -> None:
        self.results.append(result)
        self.total_fetched += result.fetched
        self.total_inserted += result.inserted
        self.total_duplicates += result.duplicates
        if not result.success:
            self.total_errors += 1


# --- Helpers ---

def _parse_ts(val: Any) -> Optional[datetime]:
    """Parse a timestamp string or return None."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return val
    try:
        from dateutil.parser import parse
        return parse(str(val))
    except (ValueError, TypeError, OverflowError):
        return None
