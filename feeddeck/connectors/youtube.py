"""YouTube Data API v3 catalog client over aiohttp.

Paging is two calls per page: playlistItems returns only video references,
then one batched videos lookup returns duration, thumbnails and publish time.
No retries here; retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
from dateutil.parser import isoparse

from feeddeck.connectors.base import (
    BaseCatalog,
    CatalogItem,
    CatalogPage,
    SearchResult,
    SourceKind,
)
from feeddeck.errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com/youtube/v3"
DEFAULT_TIMEOUT = 30.0
MAX_PAGE_SIZE = 50

# Preference order when a video has several thumbnail sizes
THUMBNAIL_PREFERENCE = ("medium", "high", "default")


def best_thumbnail(thumbnails: Optional[Dict[str, Any]]) -> str:
    """Pick a thumbnail URL: medium, then high, then default."""
    if not thumbnails:
        return ""
    for size in THUMBNAIL_PREFERENCE:
        thumb = thumbnails.get(size)
        if isinstance(thumb, dict) and thumb.get("url"):
            return thumb["url"]
    return ""


def _parse_published(val: Any) -> Optional[datetime]:
    if not val:
        return None
    try:
        return isoparse(str(val))
    except (ValueError, TypeError):
        return None


def _normalize_video(video: Dict[str, Any]) -> CatalogItem:
    snippet = video.get("snippet") or {}
    details = video.get("contentDetails") or {}
    return CatalogItem(
        external_id=video["id"],
        title=snippet.get("title") or "Untitled",
        thumbnail_url=best_thumbnail(snippet.get("thumbnails")),
        duration=details.get("duration") or "",
        published_at=_parse_published(snippet.get("publishedAt")),
    )


def _error_message(data: Any, fallback: str) -> str:
    """Pull the message out of a Google API error body."""
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        err = data["error"]
        reasons = [e.get("reason") for e in err.get("errors") or [] if isinstance(e, dict)]
        msg = err.get("message") or fallback
        if reasons and reasons[0]:
            return f"{msg} ({reasons[0]})"
        return msg
    return fallback


class YouTubeCatalog(BaseCatalog):
    """Catalog backed by the YouTube Data API.

    Usage:
        async with YouTubeCatalog(api_key) as catalog:
            page = await catalog.fetch_source_page(SourceKind.CHANNEL, "UC...", "", 20)
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> YouTubeCatalog:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout)
        ) as session:
            yield session

    async def _get(self, endpoint: str, params: Dict[str, Any], stage: str) -> Dict[str, Any]:
        """GET an API endpoint and return the decoded JSON body."""
        url = f"{self.base_url}/{endpoint}"
        query = {k: str(v) for k, v in params.items()}
        query["key"] = self.api_key
        try:
            async with self._session_scope() as session:
                async with session.get(url, params=query) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    if resp.status >= 400:
                        message = _error_message(data, f"HTTP {resp.status}")
                        if resp.status == 404 and endpoint == "playlistItems":
                            raise NotFound(params.get("playlistId", ""), kind="playlist")
                        raise UpstreamFailure(
                            f"{endpoint} returned {resp.status}: {message}",
                            stage=stage,
                            status=resp.status,
                        )
        except aiohttp.ClientError as e:
            raise UpstreamFailure(f"{endpoint} request failed: {e}", stage=stage) from e
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(
                f"{endpoint} timed out after {self.request_timeout}s", stage=stage
            ) from e
        if not isinstance(data, dict):
            raise UpstreamFailure(f"{endpoint} returned a non-JSON body", stage=stage)
        return data

    async def resolve_uploads_list(self, channel_id: str) -> str:
        data = await self._get(
            "channels", {"part": "contentDetails", "id": channel_id}, stage="resolve"
        )
        items = data.get("items") or []
        if not items:
            raise NotFound(channel_id, kind="channel")
        related = (items[0].get("contentDetails") or {}).get("relatedPlaylists") or {}
        uploads = related.get("uploads")
        if not uploads:
            raise NotFound(channel_id, kind="channel")
        logger.debug("Channel %s uploads list: %s", channel_id, uploads)
        return uploads

    async def fetch_page(self, list_id: str, cursor: str, page_size: int) -> CatalogPage:
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        params: Dict[str, Any] = {
            "part": "snippet,contentDetails",
            "playlistId": list_id,
            "maxResults": page_size,
        }
        if cursor:
            params["pageToken"] = cursor
        data = await self._get("playlistItems", params, stage="fetch_page")

        video_ids: List[str] = []
        for entry in data.get("items") or []:
            vid = (entry.get("contentDetails") or {}).get("videoId")
            if vid and vid not in video_ids:
                video_ids.append(vid)

        if not video_ids:
            return CatalogPage(items=[], next_cursor="")

        videos = await self.fetch_videos(video_ids)
        next_cursor = data.get("nextPageToken") or ""
        logger.debug(
            "Playlist %s: %d ids, %d videos, next=%r",
            list_id, len(video_ids), len(videos), next_cursor,
        )
        return CatalogPage(items=videos, next_cursor=next_cursor)

    async def fetch_videos(self, video_ids: List[str]) -> List[CatalogItem]:
        """Batched detail lookup, returned in the order of video_ids."""
        if not video_ids:
            return []
        data = await self._get(
            "videos",
            {
                "part": "snippet,contentDetails",
                "id": ",".join(video_ids),
                "maxResults": len(video_ids),
            },
            stage="fetch_details",
        )
        by_id: Dict[str, CatalogItem] = {}
        for video in data.get("items") or []:
            if video.get("id"):
                by_id[video["id"]] = _normalize_video(video)
        # Private/deleted videos are listed in the playlist but have no details
        return [by_id[vid] for vid in video_ids if vid in by_id]

    async def search(self, query: str, kind: SourceKind, max_results: int = 10) -> List[SearchResult]:
        data = await self._get(
            "search",
            {
                "part": "snippet",
                "q": query,
                "type": kind.value,
                "maxResults": max(1, min(max_results, MAX_PAGE_SIZE)),
            },
            stage="search",
        )
        results: List[SearchResult] = []
        for entry in data.get("items") or []:
            snippet = entry.get("snippet") or {}
            if kind is SourceKind.CHANNEL:
                ext_id = snippet.get("channelId") or (entry.get("id") or {}).get("channelId")
            else:
                ext_id = (entry.get("id") or {}).get("playlistId")
            if not ext_id:
                continue
            results.append(
                SearchResult(
                    external_id=ext_id,
                    title=snippet.get("title") or "",
                    thumbnail_url=best_thumbnail(snippet.get("thumbnails")),
                    kind=kind,
                )
            )
        return results
