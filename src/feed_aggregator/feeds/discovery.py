"""Feed autodiscovery from HTML pages.

Finds feeds advertised by a page through ``<link rel="alternate">`` tags
(RSS, Atom and JSON Feed content types) and, when the page itself carries
microformats2 h-entry markup, offers the page as an h-feed.

Network access lives in :meth:`FeedFetcher.discover`; this module only
inspects HTML it is given.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from feed_aggregator.feeds.hfeed import has_hfeed

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Content types that identify a feed in a ``<link>`` tag, mapped to the
#: feed type reported to callers.
FEED_CONTENT_TYPES: dict[str, str] = {
    "application/rss+xml": "rss",
    "application/atom+xml": "atom",
    "application/feed+json": "jsonfeed",
    "application/json": "jsonfeed",
    "application/xml": "rss",
    "text/xml": "rss",
}


# ---------------------------------------------------------------------------
# Feed discovery
# ---------------------------------------------------------------------------


def discover_feeds(html: str, base_url: str) -> list[dict[str, Any]]:
    """Return the feeds a page advertises.

    Args:
        html: Page HTML.
        base_url: URL the page was fetched from; relative hrefs resolve
            against it.

    Returns:
        List of dicts with ``url``, ``type`` (``"rss"``, ``"atom"``,
        ``"jsonfeed"`` or ``"hfeed"``), ``title`` and ``rel``, de-duplicated
        by URL in document order.  The page itself comes last, as an
        ``"hfeed"`` with ``rel="self"``, when it contains h-entry markup.
    """
    feeds: list[dict[str, Any]] = []
    try:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup.find_all("link", rel="alternate"):
            if not isinstance(tag, Tag):
                continue
            content_type = str(tag.get("type") or "").split(";")[0].strip().lower()
            href = tag.get("href")
            if not content_type or not href:
                continue
            feed_type = FEED_CONTENT_TYPES.get(content_type)
            if feed_type is None:
                continue
            absolute_url = urljoin(base_url, str(href))
            feeds.append({
                "url": absolute_url,
                "type": feed_type,
                "title": tag.get("title") or _derive_title_from_url(absolute_url),
                "rel": "alternate",
            })
    except Exception as exc:  # noqa: BLE001
        logger.warning("discovery: failed to parse HTML from %s: %s", base_url, exc)

    if has_hfeed(html):
        feeds.append({
            "url": base_url,
            "type": "hfeed",
            "title": _derive_title_from_url(base_url),
            "rel": "self",
        })

    seen_urls: set[str] = set()
    deduplicated: list[dict[str, Any]] = []
    for feed in feeds:
        if feed["url"] not in seen_urls:
            seen_urls.add(feed["url"])
            deduplicated.append(feed)

    logger.info("discovery: found %d feeds on %s", len(deduplicated), base_url)
    return deduplicated


def _derive_title_from_url(url: str) -> str:
    """Derive a human-readable title from the last URL path segment, or the host."""
    parsed = urlparse(url)
    path = parsed.path.strip("/")
    if path:
        return path.split("/")[-1].replace("-", " ").replace("_", " ").title()
    return parsed.netloc
