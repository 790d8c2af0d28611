"""RSS 0.9x/1.0/2.0 and Atom parsing via feedparser.

feedparser already unifies the XML dialects; this module maps its result
onto the canonical model.  A document that feedparser flags as malformed
("bozo") is still accepted when it yielded a feed title or any entries.
"""

from __future__ import annotations

import calendar
import io
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import feedparser

from feed_aggregator.core.exceptions import ParseError
from feed_aggregator.core.schemas.canonical import Author, CanonicalFeed, CanonicalItem
from feed_aggregator.feeds.normalizer import (
    build_card,
    build_content,
    generate_item_uid,
    strip_html,
)

logger = logging.getLogger(__name__)


def parse_rss(content: str, source_url: str) -> CanonicalFeed:
    """Parse an RSS or Atom document.

    Raises:
        ParseError: ``"RSS parse error: ..."`` when the document is not a
            recognisable feed.
    """
    try:
        parsed = feedparser.parse(
            io.BytesIO(content.encode("utf-8")),
            response_headers={"content-type": "application/xml; charset=utf-8"},
        )
    except Exception as exc:  # noqa: BLE001
        raise ParseError(f"RSS parse error: {exc}", format="rss") from exc

    channel = parsed.get("feed", {}) or {}
    if not parsed.entries and not channel.get("title"):
        reason = getattr(parsed, "bozo_exception", None) or "no feed or entries found"
        raise ParseError(f"RSS parse error: {reason}", format="rss")
    if parsed.bozo:
        logger.debug(
            "rss: lenient parse of %s: %s",
            source_url,
            getattr(parsed, "bozo_exception", "unknown"),
        )

    feed_author = _card_from_detail(channel.get("author_detail"), channel.get("author"))
    source = {"url": source_url, "name": channel.get("title")}

    items: list[CanonicalItem] = []
    for entry in parsed.entries:
        try:
            items.append(_normalize_entry(entry, source_url, feed_author, source))
        except Exception as exc:  # noqa: BLE001
            logger.warning("rss: skipping unparseable entry in %s: %s", source_url, exc)

    return CanonicalFeed(
        url=channel.get("link"),
        name=channel.get("title"),
        summary=channel.get("subtitle") or channel.get("description"),
        photo=_feed_photo(channel),
        author=feed_author,
        items=items,
        hub=_link_href(channel.get("links", []), "hub"),
        self_url=_link_href(channel.get("links", []), "self"),
    )


# ---------------------------------------------------------------------------
# Entry mapping
# ---------------------------------------------------------------------------


def _normalize_entry(
    entry: Any,
    source_url: str,
    feed_author: Optional[Author],
    source: dict[str, Any],
) -> CanonicalItem:
    link: Optional[str] = entry.get("link")
    native_id = entry.get("id") or link or entry.get("title")
    if not native_id:
        raise ValueError("entry has no id, link or title")

    html_body, text_body = _entry_body(entry)
    raw_summary: str = entry.get("summary", "") or ""

    summary: Optional[str] = None
    if raw_summary and raw_summary != html_body:
        summary = strip_html(raw_summary) or None

    photos, videos, audios = _entry_media(entry)

    return CanonicalItem(
        uid=generate_item_uid(source_url, native_id),
        url=link,
        name=entry.get("title") or None,
        summary=summary,
        content=build_content(text_body, html_body),
        published=_struct_to_datetime(entry.get("published_parsed") or entry.get("updated_parsed")),
        updated=_struct_to_datetime(entry.get("updated_parsed")),
        author=_card_from_detail(entry.get("author_detail"), entry.get("author")) or feed_author,
        category=[str(tag.get("term")) for tag in entry.get("tags", []) if tag.get("term")],
        photo=photos,
        video=videos,
        audio=audios,
        source=source,
    )


def _entry_body(entry: Any) -> tuple[Optional[str], Optional[str]]:
    """Return ``(html, text)`` for the entry body.

    Prefers full ``content`` over ``summary``/``description``.  Plain-text
    bodies are returned as text; everything else is treated as HTML.
    """
    blocks = entry.get("content") or []
    if blocks:
        block = blocks[0]
        value = block.get("value") or ""
        if block.get("type") == "text/plain":
            return None, value or None
        return value or None, None
    summary = entry.get("summary") or ""
    detail = entry.get("summary_detail") or {}
    if detail.get("type") == "text/plain":
        return None, summary or None
    return summary or None, None


def _entry_media(entry: Any) -> tuple[list[str], list[str], list[str]]:
    photos: list[str] = []
    videos: list[str] = []
    audios: list[str] = []

    def _add(url: Optional[str], mime: str, medium: str = "") -> None:
        if not url:
            return
        if medium == "image" or mime.startswith("image/"):
            target = photos
        elif medium == "video" or mime.startswith("video/"):
            target = videos
        elif medium == "audio" or mime.startswith("audio/"):
            target = audios
        else:
            return
        if url not in target:
            target.append(url)

    for mc in entry.get("media_content", []):
        _add(mc.get("url"), mc.get("type", "") or "", mc.get("medium", "") or "")
    for thumb in entry.get("media_thumbnail", []):
        _add(thumb.get("url"), "image/")
    for enc in entry.get("enclosures", []):
        _add(enc.get("href") or enc.get("url"), enc.get("type", "") or "")
    return photos, videos, audios


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _struct_to_datetime(struct: Any) -> Optional[datetime]:
    if not struct:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(struct), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _card_from_detail(detail: Any, fallback_name: Optional[str]) -> Optional[Author]:
    detail = detail or {}
    return build_card(
        name=detail.get("name") or fallback_name,
        url=detail.get("href"),
    )


def _feed_photo(channel: Any) -> Optional[str]:
    image = channel.get("image") or {}
    return image.get("href") or image.get("url") or channel.get("icon") or channel.get("logo")


def _link_href(links: list[Any], rel: str) -> Optional[str]:
    for link in links:
        if link.get("rel") == rel and link.get("href"):
            return link["href"]
    return None
