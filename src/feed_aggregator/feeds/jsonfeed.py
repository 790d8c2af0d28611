"""JSON Feed 1.0 / 1.1 parsing.

A document must declare a ``version`` URL under
``https://jsonfeed.org/version/`` and carry an ``items`` array; violations
raise :class:`~feed_aggregator.core.exceptions.JsonFeedValidationError`
with ``reason`` set to ``"version"`` or ``"items"``.

1.0 documents use a single ``author`` object; 1.1 uses ``authors``.  Both
are read.  Attachments are sorted into photo / video / audio by MIME type.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from feed_aggregator.core.exceptions import JsonFeedValidationError, ParseError
from feed_aggregator.core.schemas.canonical import Author, CanonicalFeed, CanonicalItem
from feed_aggregator.feeds.normalizer import (
    build_card,
    build_content,
    ensure_list,
    generate_item_uid,
    parse_datetime,
)

logger = logging.getLogger(__name__)

JSON_FEED_VERSION_PREFIX = "https://jsonfeed.org/version/"


def parse_json_feed(content: Union[str, bytes, dict[str, Any]], source_url: str) -> CanonicalFeed:
    """Parse a JSON Feed document (raw text or an already-decoded dict).

    Raises:
        ParseError: ``"JSON Feed parse error: ..."`` for invalid JSON or a
            non-object document.
        JsonFeedValidationError: Missing/invalid version, or non-array items.
    """
    if isinstance(content, (str, bytes)):
        try:
            document = json.loads(content)
        except ValueError as exc:
            raise ParseError(f"JSON Feed parse error: {exc}", format="jsonfeed") from exc
    else:
        document = content

    if not isinstance(document, dict):
        raise ParseError("JSON Feed parse error: document is not an object", format="jsonfeed")

    version = document.get("version")
    if not isinstance(version, str) or not version.startswith(JSON_FEED_VERSION_PREFIX):
        raise JsonFeedValidationError("version")
    raw_items = document.get("items")
    if not isinstance(raw_items, list):
        raise JsonFeedValidationError("items")

    feed_author = _first_author(document)
    source = {"url": source_url, "name": document.get("title")}

    items: list[CanonicalItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            logger.warning("jsonfeed: skipping non-object item in %s", source_url)
            continue
        try:
            item = _normalize_item(raw, source_url, feed_author, source)
        except Exception as exc:  # noqa: BLE001
            logger.warning("jsonfeed: skipping unparseable item in %s: %s", source_url, exc)
            continue
        if item is not None:
            items.append(item)

    return CanonicalFeed(
        url=document.get("home_page_url"),
        name=document.get("title"),
        summary=document.get("description"),
        photo=document.get("icon") or document.get("favicon"),
        author=feed_author,
        items=items,
        hub=_websub_hub(document.get("hubs")),
        self_url=document.get("feed_url"),
    )


def _normalize_item(
    raw: dict[str, Any],
    source_url: str,
    feed_author: Optional[Author],
    source: dict[str, Any],
) -> Optional[CanonicalItem]:
    native_id = raw.get("id") or raw.get("url")
    if native_id is None or native_id == "":
        logger.warning("jsonfeed: skipping item without id in %s", source_url)
        return None

    photos = [p for p in ensure_list(raw.get("image")) + ensure_list(raw.get("banner_image")) if isinstance(p, str)]
    videos: list[str] = []
    audios: list[str] = []
    for attachment in ensure_list(raw.get("attachments")):
        if not isinstance(attachment, dict) or not attachment.get("url"):
            continue
        mime = str(attachment.get("mime_type") or "")
        if mime.startswith("image/"):
            photos.append(attachment["url"])
        elif mime.startswith("video/"):
            videos.append(attachment["url"])
        elif mime.startswith("audio/"):
            audios.append(attachment["url"])

    return CanonicalItem(
        uid=generate_item_uid(source_url, native_id),
        url=raw.get("url") or raw.get("external_url"),
        name=raw.get("title") or None,
        summary=raw.get("summary") or None,
        content=build_content(raw.get("content_text"), raw.get("content_html")),
        published=parse_datetime(raw.get("date_published")),
        updated=parse_datetime(raw.get("date_modified")),
        author=_first_author(raw) or feed_author,
        category=[str(tag) for tag in ensure_list(raw.get("tags"))],
        photo=photos,
        video=videos,
        audio=audios,
        source=source,
    )


def _first_author(obj: dict[str, Any]) -> Optional[Author]:
    candidates = ensure_list(obj.get("authors")) or ensure_list(obj.get("author"))
    for candidate in candidates:
        if isinstance(candidate, dict):
            card = build_card(candidate.get("name"), candidate.get("url"), candidate.get("avatar"))
            if card is not None:
                return card
    return None


def _websub_hub(hubs: Any) -> Optional[str]:
    """Return the WebSub hub URL, preferring hubs typed ``WebSub``."""
    entries = [h for h in ensure_list(hubs) if isinstance(h, dict) and h.get("url")]
    for hub in entries:
        if str(hub.get("type", "")).lower() == "websub":
            return hub["url"]
    return entries[0]["url"] if entries else None
