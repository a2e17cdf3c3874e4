"""Tests for the YouTube catalog client against a local fake of the Data API."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from types import SimpleNamespace

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from feeddeck.connectors.base import SourceKind
from feeddeck.connectors.youtube import YouTubeCatalog, best_thumbnail
from feeddeck.errors import NotFound, UpstreamFailure

API_KEY = "test-key"


def _video(vid: str, published: str = "2025-01-15T10:00:00Z") -> dict:
    return {
        "id": vid,
        "snippet": {
            "title": f"Title {vid}",
            "publishedAt": published,
            "thumbnails": {
                "default": {"url": f"https://i.ytimg.com/vi/{vid}/default.jpg"},
                "medium": {"url": f"https://i.ytimg.com/vi/{vid}/mqdefault.jpg"},
            },
        },
        "contentDetails": {"duration": "PT2M5S"},
    }


PLAYLISTS = {
    ("UU_chan", ""): (["v1", "v2", "gone"], "tok1"),
    ("UU_chan", "tok1"): (["v3"], None),
    ("PL_empty", ""): ([], "ignored"),
}


def _error(status: int, message: str, reason: str) -> web.Response:
    return web.json_response(
        {"error": {"code": status, "message": message, "errors": [{"reason": reason}]}},
        status=status,
    )


@pytest.fixture
async def api():
    calls: Counter = Counter()
    seen_params: list = []

    async def channels(request: web.Request) -> web.Response:
        calls["channels"] += 1
        seen_params.append(dict(request.query))
        channel_id = request.query["id"]
        if channel_id == "UC_boom":
            return _error(500, "Backend Error", "backendError")
        if channel_id == "UC_chan":
            return web.json_response({
                "items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_chan"}}}]
            })
        return web.json_response({"items": []})

    async def playlist_items(request: web.Request) -> web.Response:
        calls["playlistItems"] += 1
        seen_params.append(dict(request.query))
        key = (request.query["playlistId"], request.query.get("pageToken", ""))
        if request.query["playlistId"] == "PL_missing":
            return _error(404, "Playlist not found", "playlistNotFound")
        if request.query["playlistId"] == "PL_quota":
            return _error(403, "Quota exceeded", "quotaExceeded")
        ids, token = PLAYLISTS[key]
        body = {"items": [{"contentDetails": {"videoId": vid}} for vid in ids]}
        if token:
            body["nextPageToken"] = token
        return web.json_response(body)

    async def videos(request: web.Request) -> web.Response:
        calls["videos"] += 1
        seen_params.append(dict(request.query))
        ids = request.query["id"].split(",")
        # Reversed to check the client restores page order; "gone" has no details
        return web.json_response({"items": [_video(v) for v in reversed(ids) if v != "gone"]})

    async def search(request: web.Request) -> web.Response:
        calls["search"] += 1
        if request.query["type"] == "channel":
            items = [{"id": {"kind": "youtube#channel", "channelId": "UC1"},
                      "snippet": {"channelId": "UC1", "title": "Chan",
                                  "thumbnails": {"high": {"url": "h.jpg"}}}}]
        else:
            items = [{"id": {"kind": "youtube#playlist", "playlistId": "PL1"},
                      "snippet": {"channelId": "UC1", "title": "List", "thumbnails": {}}},
                     {"id": {"kind": "youtube#playlist"}, "snippet": {"title": "broken"}}]
        return web.json_response({"items": items})

    app = web.Application()
    app.router.add_get("/youtube/v3/channels", channels)
    app.router.add_get("/youtube/v3/playlistItems", playlist_items)
    app.router.add_get("/youtube/v3/videos", videos)
    app.router.add_get("/youtube/v3/search", search)

    server = TestServer(app)
    await server.start_server()
    yield SimpleNamespace(
        calls=calls,
        seen_params=seen_params,
        make_url=server.make_url,
    )
    await server.close()


@pytest.fixture
async def yt(api):
    catalog = YouTubeCatalog(API_KEY, base_url=str(api.make_url("/youtube/v3")))
    async with catalog:
        yield catalog


class TestBestThumbnail:
    def test_none_and_empty(self):
        assert best_thumbnail(None) == ""
        assert best_thumbnail({}) == ""

    def test_single_sizes(self):
        assert best_thumbnail({"default": {"url": "d"}}) == "d"
        assert best_thumbnail({"high": {"url": "h"}}) == "h"
        assert best_thumbnail({"medium": {"url": "m"}}) == "m"

    def test_prefers_medium_then_high(self):
        assert best_thumbnail({"default": {"url": "d"}, "medium": {"url": "m"}, "high": {"url": "h"}}) == "m"
        assert best_thumbnail({"default": {"url": "d"}, "high": {"url": "h"}}) == "h"


class TestYouTubeCatalog:
    async def test_resolve_uploads_list(self, yt, api):
        assert await yt.resolve_uploads_list("UC_chan") == "UU_chan"
        params = api.seen_params[0]
        assert params["key"] == API_KEY
        assert params["part"] == "contentDetails"

    async def test_resolve_unknown_channel(self, yt):
        with pytest.raises(NotFound) as exc:
            await yt.resolve_uploads_list("UC_nope")
        assert exc.value.stage == "resolve"
        assert exc.value.external_id == "UC_nope"

    async def test_fetch_page_preserves_order_and_normalizes(self, yt, api):
        page = await yt.fetch_page("UU_chan", "", 20)
        assert [i.external_id for i in page.items] == ["v1", "v2"]
        assert page.next_cursor == "tok1"

        first = page.items[0]
        assert first.title == "Title v1"
        assert first.duration == "PT2M5S"
        assert first.thumbnail_url.endswith("/v1/mqdefault.jpg")
        assert first.published_at == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert first.is_short is None
        assert "pageToken" not in api.seen_params[0]

    async def test_fetch_page_with_token_last_page(self, yt, api):
        page = await yt.fetch_page("UU_chan", "tok1", 20)
        assert [i.external_id for i in page.items] == ["v3"]
        assert page.next_cursor == ""
        assert api.seen_params[0]["pageToken"] == "tok1"

    async def test_empty_id_batch_skips_detail_call(self, yt, api):
        page = await yt.fetch_page("PL_empty", "", 20)
        assert page.items == []
        assert page.next_cursor == ""
        assert api.calls["playlistItems"] == 1
        assert api.calls["videos"] == 0

    async def test_page_size_clamped(self, yt, api):
        await yt.fetch_page("UU_chan", "", 500)
        assert api.seen_params[0]["maxResults"] == "50"

    async def test_fetch_source_page_channel_resolves_first(self, yt, api):
        page = await yt.fetch_source_page(SourceKind.CHANNEL, "UC_chan", "", 20)
        assert [i.external_id for i in page.items] == ["v1", "v2"]
        assert api.calls["channels"] == 1

    async def test_fetch_source_page_playlist_skips_resolution(self, yt, api):
        await yt.fetch_source_page(SourceKind.PLAYLIST, "UU_chan", "tok1", 20)
        assert api.calls["channels"] == 0

    async def test_missing_playlist_is_not_found(self, yt):
        with pytest.raises(NotFound) as exc:
            await yt.fetch_page("PL_missing", "", 20)
        assert exc.value.kind == "playlist"

    async def test_http_error_is_upstream_failure(self, yt):
        with pytest.raises(UpstreamFailure) as exc:
            await yt.fetch_page("PL_quota", "", 20)
        assert exc.value.status == 403
        assert exc.value.stage == "fetch_page"
        assert "quotaExceeded" in str(exc.value)

    async def test_server_error_on_resolve(self, yt):
        with pytest.raises(UpstreamFailure) as exc:
            await yt.resolve_uploads_list("UC_boom")
        assert exc.value.stage == "resolve"
        assert exc.value.status == 500

    async def test_connection_error_is_upstream_failure(self):
        catalog = YouTubeCatalog(API_KEY, base_url="http://127.0.0.1:1/youtube/v3")
        with pytest.raises(UpstreamFailure) as exc:
            await catalog.fetch_page("UU_chan", "", 20)
        assert isinstance(exc.value.__cause__, aiohttp.ClientError)

    async def test_fetch_videos_empty(self, yt, api):
        assert await yt.fetch_videos([]) == []
        assert api.calls["videos"] == 0

    async def test_search(self, yt):
        channels = await yt.search("chan", SourceKind.CHANNEL)
        assert [(r.external_id, r.thumbnail_url) for r in channels] == [("UC1", "h.jpg")]
        playlists = await yt.search("list", SourceKind.PLAYLIST)
        assert [r.external_id for r in playlists] == ["PL1"]
        assert playlists[0].kind is SourceKind.PLAYLIST

    async def test_shared_session_not_closed(self, api):
        async with aiohttp.ClientSession() as session:
            catalog = YouTubeCatalog(API_KEY, base_url=str(api.make_url("/youtube/v3")), session=session)
            async with catalog:
                await catalog.fetch_page("UU_chan", "tok1", 20)
            assert not session.closed
