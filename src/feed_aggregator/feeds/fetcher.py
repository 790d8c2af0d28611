"""Conditional feed fetcher with an optional response cache.

:class:`FeedFetcher` performs one HTTP GET per call with:

- a read-through cache keyed ``feed:{url}`` that short-circuits the network
  on a hit and is refreshed after every 200 response (fixed short TTL,
  independent of the feed's polling tier);
- ``If-None-Match`` / ``If-Modified-Since`` revalidation from the stored
  validators, with HTTP 304 reported as ``not_modified``;
- a hard total deadline (``asyncio.wait_for`` around the whole request,
  body included) that raises :class:`FetchTimeoutError`;
- transparent redirect following;
- WebSub discovery from the ``Link`` response header (``rel=hub`` and
  ``rel=self``).

Usage::

    fetcher = FeedFetcher(cache=cache, timeout=30)
    result = await fetcher.fetch(url, etag=feed.etag, last_modified=feed.last_modified)
    parsed = await fetcher.fetch_and_parse(url)
    await fetcher.aclose()
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from feed_aggregator.core.cache import Cache, NullCache
from feed_aggregator.core.exceptions import FetchError, FetchTimeoutError, HttpError
from feed_aggregator.core.schemas.canonical import CanonicalFeed, CanonicalItem
from feed_aggregator.feeds.discovery import discover_feeds
from feed_aggregator.feeds.normalizer import parse_feed

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT: float = 30.0
DEFAULT_CACHE_TTL: int = 300
DEFAULT_USER_AGENT = "FeedAggregator/1.0 (+https://github.com/feed-aggregator)"

ACCEPT_HEADER = (
    "application/atom+xml, application/rss+xml, application/json, "
    "application/feed+json, text/xml, text/html;q=0.9, */*;q=0.8"
)

_LINK_HUB_RE = re.compile(r"""<([^>]+)>;\s*rel=["']?hub["']?""", re.IGNORECASE)
_LINK_SELF_RE = re.compile(r"""<([^>]+)>;\s*rel=["']?self["']?""", re.IGNORECASE)

_FEED_TYPE_MARKERS = ("xml", "rss", "atom", "json")


def cache_key(url: str) -> str:
    return f"feed:{url}"


def parse_link_header(header: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Return ``(hub, self)`` URLs from a ``Link`` header value."""
    if not header:
        return None, None
    hub = _LINK_HUB_RE.search(header)
    self_ = _LINK_SELF_RE.search(header)
    return (hub.group(1) if hub else None, self_.group(1) if self_ else None)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Outcome of one fetch.

    ``content`` is ``None`` when ``not_modified`` is set; the validators are
    then the ones the caller supplied.
    """

    url: str
    status_code: int
    content: Optional[str] = None
    content_type: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    from_cache: bool = False
    not_modified: bool = False
    hub: Optional[str] = None
    self_url: Optional[str] = None


@dataclass
class ParsedFeed:
    """A fetch result combined with its normalized feed.

    ``items`` is empty and ``feed`` is ``None`` for not-modified responses.
    ``hub`` is the ``Link`` header hub when present, otherwise the hub the
    document advertises.
    """

    fetch: FetchResult
    feed: Optional[CanonicalFeed] = None
    items: list[CanonicalItem] = field(default_factory=list)
    hub: Optional[str] = None
    self_url: Optional[str] = None

    @property
    def not_modified(self) -> bool:
        return self.fetch.not_modified

    @property
    def name(self) -> Optional[str]:
        return self.feed.name if self.feed else None

    @property
    def photo(self) -> Optional[str]:
        return self.feed.photo if self.feed else None


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class FeedFetcher:
    """HTTP client wrapper for feed retrieval.

    Args:
        http_client: Optional injected :class:`httpx.AsyncClient` (used in
            tests).  When omitted the fetcher creates and owns one.
        cache: Cache capability; defaults to :class:`NullCache`.
        timeout: Default hard deadline in seconds.
        cache_ttl: Lifetime of cached responses in seconds.
        user_agent: ``User-Agent`` header value.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[Cache] = None,
        timeout: float = DEFAULT_TIMEOUT,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._owns_client = http_client is None
        self._http_client = http_client
        self.cache: Cache = cache if cache is not None else NullCache()
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.user_agent = user_agent

    def _build_http_client(self) -> httpx.AsyncClient:
        """Return the shared client, creating it on first use."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(
        self,
        url: str,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> FetchResult:
        """Fetch ``url``, revalidating with the given validators.

        Raises:
            FetchTimeoutError: The deadline elapsed before the body arrived.
            HttpError: Non-2xx status other than 304.
            FetchError: Connection-level failure.
        """
        cached = await self.cache.get(cache_key(url))
        if isinstance(cached, dict) and cached.get("content") is not None:
            logger.debug("fetcher: cache hit for %s", url)
            return FetchResult(
                url=url,
                status_code=200,
                content=cached["content"],
                content_type=cached.get("content_type"),
                etag=cached.get("etag"),
                last_modified=cached.get("last_modified"),
                hub=cached.get("hub"),
                self_url=cached.get("self_url"),
                from_cache=True,
            )

        headers = {"Accept": ACCEPT_HEADER, "User-Agent": self.user_agent}
        if etag:
            headers["If-None-Match"] = etag
        if last_modified:
            headers["If-Modified-Since"] = last_modified

        deadline = timeout if timeout is not None else self.timeout
        client = self._build_http_client()
        try:
            response = await asyncio.wait_for(
                client.get(url, headers=headers, follow_redirects=True),
                timeout=deadline,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise FetchTimeoutError(deadline, url=url) from exc
        except httpx.RequestError as exc:
            raise FetchError(f"Request error: {exc}", url=url) from exc

        if response.status_code == 304:
            logger.debug("fetcher: %s not modified", url)
            return FetchResult(
                url=url,
                status_code=304,
                etag=etag,
                last_modified=last_modified,
                not_modified=True,
            )

        if not response.is_success:
            raise HttpError(response.status_code, response.reason_phrase, url=url)

        hub, self_url = parse_link_header(response.headers.get("Link"))
        result = FetchResult(
            url=url,
            status_code=response.status_code,
            content=response.text,
            content_type=response.headers.get("Content-Type", ""),
            etag=response.headers.get("ETag"),
            last_modified=response.headers.get("Last-Modified"),
            hub=hub,
            self_url=self_url,
        )

        await self.cache.set(
            cache_key(url),
            {
                "content": result.content,
                "content_type": result.content_type,
                "etag": result.etag,
                "last_modified": result.last_modified,
                "hub": result.hub,
                "self_url": result.self_url,
            },
            ttl=self.cache_ttl,
        )
        return result

    async def fetch_and_parse(
        self,
        url: str,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ParsedFeed:
        """Fetch ``url`` and normalize the body.

        Raises:
            FetchError: See :meth:`fetch`.
            ParseError: The body is not a parseable feed.
        """
        result = await self.fetch(url, etag=etag, last_modified=last_modified, timeout=timeout)
        if result.not_modified:
            return ParsedFeed(fetch=result)

        feed = parse_feed(result.content, url, content_type=result.content_type)
        return ParsedFeed(
            fetch=result,
            feed=feed,
            items=list(feed.items),
            hub=result.hub or feed.hub,
            self_url=result.self_url or feed.self_url,
        )

    async def discover(self, url: str) -> list[dict[str, Any]]:
        """Return the feeds available at ``url``.

        When ``url`` already serves a feed content type it is returned as
        the only result; otherwise the page HTML is searched.
        """
        result = await self.fetch(url)
        content_type = (result.content_type or "").lower()
        if any(marker in content_type for marker in _FEED_TYPE_MARKERS):
            return [{
                "url": url,
                "type": "jsonfeed" if "json" in content_type else "xml",
                "rel": "self",
            }]
        return discover_feeds(result.content or "", url)
