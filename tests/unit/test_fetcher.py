"""Tests for the conditional feed fetcher.

HTTP is mocked with respx; the cache is a small in-memory stand-in so the
read-through behaviour can be observed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Optional

import httpx
import pytest
import respx

from feed_aggregator.core.exceptions import FetchError, FetchTimeoutError, HttpError, ParseError
from feed_aggregator.feeds.fetcher import FeedFetcher, cache_key, parse_link_header

FEED_URL = "https://blog.example.com/feed.xml"


class MemoryCache:
    """In-memory cache recording every write."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, Optional[int]] = {}

    async def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def publish(self, channel: str, data: Any) -> None:
        return None

    async def subscribe(self, channel: str):
        return
        yield

    async def aclose(self) -> None:
        return None


class TestParseLinkHeader:
    def test_hub_and_self(self) -> None:
        header = '<https://hub.example.com/>; rel="hub", <https://blog.example.com/feed.xml>; rel="self"'

        assert parse_link_header(header) == ("https://hub.example.com/", "https://blog.example.com/feed.xml")

    def test_missing_header(self) -> None:
        assert parse_link_header(None) == (None, None)
        assert parse_link_header('<https://x.example/>; rel="next"') == (None, None)


class TestFetch:
    @pytest.mark.asyncio
    @respx.mock
    async def test_success_returns_body_and_validators(self, load_fixture: Callable[[str], str]) -> None:
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(
                200,
                text=load_fixture("rss.xml"),
                headers={
                    "Content-Type": "application/rss+xml; charset=utf-8",
                    "ETag": '"v1"',
                    "Last-Modified": "Wed, 17 Jan 2024 09:00:00 GMT",
                    "Link": '<https://hub.example.com/>; rel="hub"',
                },
            )
        )
        fetcher = FeedFetcher()

        result = await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

        assert result.status_code == 200
        assert result.etag == '"v1"'
        assert result.last_modified == "Wed, 17 Jan 2024 09:00:00 GMT"
        assert result.hub == "https://hub.example.com/"
        assert result.content and "Example Blog" in result.content
        assert not result.from_cache
        assert not result.not_modified

    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_conditional_headers(self) -> None:
        route = respx.get(FEED_URL).mock(return_value=httpx.Response(304))
        fetcher = FeedFetcher(user_agent="TestAgent/1.0")

        result = await fetcher.fetch(FEED_URL, etag='"v1"', last_modified="Mon, 15 Jan 2024 00:00:00 GMT")
        await fetcher.aclose()

        request = route.calls.last.request
        assert request.headers["If-None-Match"] == '"v1"'
        assert request.headers["If-Modified-Since"] == "Mon, 15 Jan 2024 00:00:00 GMT"
        assert request.headers["User-Agent"] == "TestAgent/1.0"
        assert "application/rss+xml" in request.headers["Accept"]
        assert result.not_modified
        assert result.content is None
        assert result.etag == '"v1"'

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_conditional_headers_without_validators(self) -> None:
        route = respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="<rss/>"))
        fetcher = FeedFetcher()

        await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

        request = route.calls.last.request
        assert "If-None-Match" not in request.headers
        assert "If-Modified-Since" not in request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(404))
        fetcher = FeedFetcher()

        with pytest.raises(HttpError, match="HTTP 404: Not Found") as exc_info:
            await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == FEED_URL

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self) -> None:
        respx.get(FEED_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        fetcher = FeedFetcher(timeout=2.5)

        with pytest.raises(FetchTimeoutError, match="Request timeout after 2500ms"):
            await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self) -> None:
        respx.get(FEED_URL).mock(side_effect=httpx.ConnectError("refused"))
        fetcher = FeedFetcher()

        with pytest.raises(FetchError, match="refused"):
            await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_redirects_are_followed(self) -> None:
        respx.get("https://old.example.com/feed").mock(
            return_value=httpx.Response(301, headers={"Location": FEED_URL})
        )
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="<rss/>"))
        fetcher = FeedFetcher()

        result = await fetcher.fetch("https://old.example.com/feed")
        await fetcher.aclose()

        assert result.status_code == 200


class TestFetchCache:
    @pytest.mark.asyncio
    @respx.mock
    async def test_success_is_cached_with_short_ttl(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="<rss/>", headers={"ETag": '"e"'}))
        cache = MemoryCache()
        fetcher = FeedFetcher(cache=cache, cache_ttl=300)

        await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

        assert cache.data[cache_key(FEED_URL)]["content"] == "<rss/>"
        assert cache.data[cache_key(FEED_URL)]["etag"] == '"e"'
        assert cache.ttls[cache_key(FEED_URL)] == 300

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_hit_skips_network(self) -> None:
        route = respx.get(FEED_URL).mock(return_value=httpx.Response(500))
        cache = MemoryCache()
        cache.data[cache_key(FEED_URL)] = {"content": "<rss/>", "content_type": "application/rss+xml"}
        fetcher = FeedFetcher(cache=cache)

        result = await fetcher.fetch(FEED_URL)
        await fetcher.aclose()

        assert result.from_cache
        assert result.content == "<rss/>"
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_modified_is_not_cached(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(304))
        cache = MemoryCache()
        fetcher = FeedFetcher(cache=cache)

        await fetcher.fetch(FEED_URL, etag='"v1"')
        await fetcher.aclose()

        assert cache.data == {}


class TestFetchAndParse:
    @pytest.mark.asyncio
    @respx.mock
    async def test_link_header_hub_overrides_document_hub(self, load_fixture: Callable[[str], str]) -> None:
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(
                200,
                text=load_fixture("rss.xml"),
                headers={
                    "Content-Type": "application/rss+xml",
                    "Link": '<https://header-hub.example.com/>; rel="hub"',
                },
            )
        )
        fetcher = FeedFetcher()

        parsed = await fetcher.fetch_and_parse(FEED_URL)
        await fetcher.aclose()

        assert parsed.hub == "https://header-hub.example.com/"
        assert parsed.self_url == "https://blog.example.com/feed.xml"
        assert parsed.name == "Example Blog"
        assert len(parsed.items) == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_document_hub_used_without_link_header(self, load_fixture: Callable[[str], str]) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=load_fixture("rss.xml")))
        fetcher = FeedFetcher()

        parsed = await fetcher.fetch_and_parse(FEED_URL)
        await fetcher.aclose()

        assert parsed.hub == "https://hub.example.com/"

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_modified_has_no_items(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(304))
        fetcher = FeedFetcher()

        parsed = await fetcher.fetch_and_parse(FEED_URL, etag='"v1"')
        await fetcher.aclose()

        assert parsed.not_modified
        assert parsed.items == []
        assert parsed.feed is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_unparseable_body(self) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="", headers={"Content-Type": "text/plain"}))
        fetcher = FeedFetcher()

        with pytest.raises(ParseError):
            await fetcher.fetch_and_parse(FEED_URL)
        await fetcher.aclose()


class TestDiscover:
    @pytest.mark.asyncio
    @respx.mock
    async def test_feed_url_is_returned_as_is(self) -> None:
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(200, text="<rss/>", headers={"Content-Type": "application/rss+xml"})
        )
        fetcher = FeedFetcher()

        feeds = await fetcher.discover(FEED_URL)
        await fetcher.aclose()

        assert feeds == [{"url": FEED_URL, "type": "xml", "rel": "self"}]

    @pytest.mark.asyncio
    @respx.mock
    async def test_html_page_is_searched(self) -> None:
        page = '<html><head><link rel="alternate" type="application/rss+xml" href="/feed.xml"></head></html>'
        respx.get("https://blog.example.com/").mock(
            return_value=httpx.Response(200, text=page, headers={"Content-Type": "text/html"})
        )
        fetcher = FeedFetcher()

        feeds = await fetcher.discover("https://blog.example.com/")
        await fetcher.aclose()

        assert [feed["url"] for feed in feeds] == [FEED_URL]
