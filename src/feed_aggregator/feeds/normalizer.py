"""Format detection and the helpers shared by every feed parser.

:func:`parse_feed` is the single entry point used by the fetcher: it picks a
parser from the response content type, falling back to sniffing the body,
and returns a :class:`~feed_aggregator.core.schemas.canonical.CanonicalFeed`.

Field mapping applied by all parsers:

    feed title        -> name        item title        -> name
    feed description  -> summary     item id / guid    -> uid (hashed)
    feed link         -> url         item link         -> url
    feed icon         -> photo       pubDate / date_published -> published
                                     categories / tags -> category
                                     HTML and/or text  -> content {html, text}
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from feed_aggregator.core.exceptions import ParseError
from feed_aggregator.core.schemas.canonical import Author, CanonicalFeed, Content

logger = logging.getLogger(__name__)

UID_LENGTH = 24

# ---------------------------------------------------------------------------
# HTML tag stripping regex
# ---------------------------------------------------------------------------

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_html(html: Optional[str]) -> str:
    """Strip HTML tags from ``html`` and collapse whitespace.

    Returns:
        Plain text, or ``""`` for ``None`` / empty input.
    """
    if not html:
        return ""
    cleaned = _HTML_TAG_RE.sub(" ", html)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def generate_item_uid(feed_url: str, native_id: Any) -> str:
    """Return the deterministic item uid for an entry.

    SHA-256 of ``"{feed_url}::{native_id}"`` truncated to 24 lowercase hex
    characters.  Same inputs always give the same uid, which makes
    re-ingesting an entry a no-op at the storage layer.
    """
    digest = hashlib.sha256(f"{feed_url}::{native_id}".encode("utf-8")).hexdigest()
    return digest[:UID_LENGTH]


def build_content(text: Optional[str], html: Optional[str]) -> Optional[Content]:
    """Build a content object, deriving ``text`` from ``html`` when missing.

    Returns:
        ``None`` when both inputs are empty.
    """
    if not text and not html:
        return None
    if not text:
        text = strip_html(html)
    return Content(text=text or None, html=html or None)


def build_card(
    name: Optional[str] = None,
    url: Optional[str] = None,
    photo: Optional[str] = None,
) -> Optional[Author]:
    """Build an author card; ``None`` when every field is empty."""
    if not (name or url or photo):
        return None
    return Author(name=name or None, url=url or None, photo=photo or None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC.  Unparseable values give ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("normalizer: could not parse datetime %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def ensure_list(value: Any) -> list[Any]:
    """Wrap a scalar in a list; ``None`` becomes ``[]``."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v is not None]
    return [value]


# ---------------------------------------------------------------------------
# Format detection and dispatch
# ---------------------------------------------------------------------------

FORMAT_RSS = "rss"
FORMAT_JSONFEED = "jsonfeed"
FORMAT_HFEED = "hfeed"

_XML_PREFIX_RE = re.compile(r"^\s*(<\?xml|<rss\b|<feed\b|<rdf:RDF\b)", re.IGNORECASE)
_HTML_PREFIX_RE = re.compile(r"^\s*(<!doctype\s+html|<html\b)", re.IGNORECASE)


def detect_format(content: str, content_type: Optional[str] = None) -> str:
    """Decide which parser handles ``content``.

    An unambiguous body (XML prolog, JSON object) beats the declared content
    type, since many servers label feeds ``text/html`` or ``text/plain``.
    """
    if _XML_PREFIX_RE.match(content):
        return FORMAT_RSS
    if content.lstrip().startswith("{"):
        return FORMAT_JSONFEED
    if _HTML_PREFIX_RE.match(content):
        return FORMAT_HFEED

    ctype = (content_type or "").lower()
    if "json" in ctype:
        return FORMAT_JSONFEED
    if "html" in ctype:
        return FORMAT_HFEED
    return FORMAT_RSS


def parse_feed(
    content: Union[str, bytes, None],
    source_url: str,
    content_type: Optional[str] = None,
) -> CanonicalFeed:
    """Parse raw feed content into a canonical feed.

    Args:
        content: Response body.
        source_url: URL the content was fetched from; used for uid hashing
            and for resolving relative links.
        content_type: ``Content-Type`` response header, if known.

    Returns:
        The normalized feed.

    Raises:
        ParseError: Empty or malformed content.  JSON Feed structural
            problems raise the ``JsonFeedValidationError`` subclass.
    """
    from feed_aggregator.feeds.hfeed import parse_hfeed  # noqa: PLC0415
    from feed_aggregator.feeds.jsonfeed import parse_json_feed  # noqa: PLC0415
    from feed_aggregator.feeds.rss import parse_rss  # noqa: PLC0415

    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if not content or not content.strip():
        raise ParseError("Feed parse error: empty content")

    fmt = detect_format(content, content_type)
    logger.debug("normalizer: parsing %s as %s", source_url, fmt)
    if fmt == FORMAT_JSONFEED:
        return parse_json_feed(content, source_url)
    if fmt == FORMAT_HFEED:
        return parse_hfeed(content, source_url)
    return parse_rss(content, source_url)
