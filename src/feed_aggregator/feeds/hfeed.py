"""Microformats2 h-feed parsing with BeautifulSoup.

Reads ``h-entry`` elements from an HTML page, scoped to the first ``h-feed``
when the page has one.  Only the properties the canonical model needs are
parsed; nested microformats (an ``h-card`` author, an ``h-cite`` reply
context) are read as embedded objects and their own properties are not
attributed to the enclosing entry.

Property classes handled::

    p-name  p-summary  e-content  u-url  u-uid  dt-published  dt-updated
    p-author (h-card)  p-category  u-photo  u-video  u-audio
    u-like-of  u-repost-of  u-bookmark-of  u-in-reply-to  p-rsvp  p-checkin
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from feed_aggregator.core.exceptions import ParseError
from feed_aggregator.core.schemas.canonical import Author, CanonicalFeed, CanonicalItem
from feed_aggregator.feeds.normalizer import (
    build_card,
    build_content,
    generate_item_uid,
    parse_datetime,
)

logger = logging.getLogger(__name__)

_INTERACTION_PROPS: tuple[tuple[str, str], ...] = (
    ("u-like-of", "like_of"),
    ("u-repost-of", "repost_of"),
    ("u-bookmark-of", "bookmark_of"),
    ("u-in-reply-to", "in_reply_to"),
)


def parse_hfeed(content: str, source_url: str) -> CanonicalFeed:
    """Parse the h-feed on an HTML page.

    Raises:
        ParseError: ``"h-feed parse error: ..."`` when the page has no
            h-entry items.
    """
    try:
        soup = BeautifulSoup(content, "html.parser")
    except Exception as exc:  # noqa: BLE001
        raise ParseError(f"h-feed parse error: {exc}", format="hfeed") from exc

    root: Tag = _first_root(soup, "h-feed") or soup
    entries = [
        el for el in _find_class(root, "h-entry") if _owner(el) is (root if root is not soup else None)
    ]
    if not entries:
        raise ParseError("h-feed parse error: no h-entry items found", format="hfeed")

    feed_author = None
    feed_name = None
    feed_photo = None
    if root is not soup:
        feed_author = _author(root, source_url)
        feed_name = _text(_prop(root, "p-name"))
        feed_photo = _url_value(_prop(root, "u-photo"), source_url)
    if not feed_name and soup.title is not None:
        feed_name = soup.title.get_text(strip=True) or None

    source = {"url": source_url, "name": feed_name}
    items: list[CanonicalItem] = []
    for index, entry in enumerate(entries):
        item = _normalize_entry(entry, source_url, feed_author, source, index)
        if item is not None:
            items.append(item)

    return CanonicalFeed(
        url=source_url,
        name=feed_name,
        photo=feed_photo,
        author=feed_author,
        items=items,
        hub=_head_link(soup, "hub", source_url),
        self_url=_head_link(soup, "self", source_url),
    )


def has_hfeed(content: str) -> bool:
    """Return ``True`` when the HTML contains at least one h-entry."""
    soup = BeautifulSoup(content, "html.parser")
    return bool(_find_class(soup, "h-entry"))


# ---------------------------------------------------------------------------
# Entry mapping
# ---------------------------------------------------------------------------


def _normalize_entry(
    entry: Tag,
    source_url: str,
    feed_author: Optional[Author],
    source: dict[str, Any],
    index: int,
) -> Optional[CanonicalItem]:
    url = _url_value(_prop(entry, "u-url"), source_url)
    uid_value = _text(_prop(entry, "u-uid")) or url
    content_el = _prop(entry, "e-content")
    html = content_el.decode_contents().strip() if content_el is not None else None
    text = content_el.get_text(" ", strip=True) if content_el is not None else None
    name = _text(_prop(entry, "p-name"))
    if name and text and name == text:
        name = None

    native_id = uid_value or (f"{index}:{name or text}" if (name or text) else None)
    if native_id is None:
        logger.warning("hfeed: skipping entry without url, uid or text on %s", source_url)
        return None

    fields: dict[str, Any] = {}
    for cls, attr in _INTERACTION_PROPS:
        fields[attr] = [
            u for u in (_url_value(el, source_url) for el in _props(entry, cls)) if u
        ]

    checkin_el = _prop(entry, "p-checkin") or _prop(entry, "u-checkin")
    checkin = None
    if checkin_el is not None:
        checkin = {
            "type": "card",
            "name": _text(_prop(checkin_el, "p-name")) or _text(checkin_el),
            "url": _url_value(_prop(checkin_el, "u-url"), source_url),
        }

    return CanonicalItem(
        uid=generate_item_uid(source_url, native_id),
        url=url,
        name=name,
        summary=_text(_prop(entry, "p-summary")),
        content=build_content(text, html),
        published=parse_datetime(_dt_value(_prop(entry, "dt-published"))),
        updated=parse_datetime(_dt_value(_prop(entry, "dt-updated"))),
        author=_author(entry, source_url) or feed_author,
        category=[c for c in (_text(el) for el in _props(entry, "p-category")) if c],
        photo=[u for u in (_url_value(el, source_url) for el in _props(entry, "u-photo")) if u],
        video=[u for u in (_url_value(el, source_url) for el in _props(entry, "u-video")) if u],
        audio=[u for u in (_url_value(el, source_url) for el in _props(entry, "u-audio")) if u],
        rsvp=_text(_prop(entry, "p-rsvp")),
        checkin=checkin,
        source=source,
        **fields,
    )


def _author(scope: Tag, base_url: str) -> Optional[Author]:
    el = _prop(scope, "p-author") or _prop(scope, "u-author")
    if el is None:
        return None
    if "h-card" in _classes(el):
        return build_card(
            name=_text(_prop(el, "p-name")) or _text(el),
            url=_url_value(_prop(el, "u-url"), base_url),
            photo=_url_value(_prop(el, "u-photo"), base_url),
        )
    if el.name == "a" and el.get("href"):
        return build_card(name=_text(el), url=urljoin(base_url, el["href"]))
    return build_card(name=_text(el))


# ---------------------------------------------------------------------------
# Microformats helpers
# ---------------------------------------------------------------------------


def _classes(el: Tag) -> list[str]:
    value = el.get("class") or []
    return value if isinstance(value, list) else str(value).split()


def _is_root(el: Tag) -> bool:
    return any(cls.startswith("h-") for cls in _classes(el))


def _find_class(scope: Any, cls: str) -> list[Tag]:
    return [el for el in scope.find_all(class_=cls) if isinstance(el, Tag)]


def _first_root(soup: BeautifulSoup, cls: str) -> Optional[Tag]:
    found = _find_class(soup, cls)
    return found[0] if found else None


def _owner(el: Tag) -> Optional[Tag]:
    """Return the nearest enclosing microformat root of ``el`` (excluding itself)."""
    for parent in el.parents:
        if isinstance(parent, Tag) and parent.name != "[document]" and _is_root(parent):
            return parent
    return None


def _props(scope: Tag, cls: str) -> list[Tag]:
    """Property elements with class ``cls`` that belong directly to ``scope``."""
    return [el for el in _find_class(scope, cls) if _owner(el) is scope]


def _prop(scope: Tag, cls: str) -> Optional[Tag]:
    found = _props(scope, cls)
    return found[0] if found else None


def _text(el: Optional[Tag]) -> Optional[str]:
    if el is None:
        return None
    if el.name in ("data", "input") and el.get("value"):
        return str(el["value"]).strip() or None
    if el.name == "abbr" and el.get("title"):
        return str(el["title"]).strip() or None
    if el.name == "img" and el.get("alt"):
        return str(el["alt"]).strip() or None
    return el.get_text(" ", strip=True) or None


def _url_value(el: Optional[Tag], base_url: str) -> Optional[str]:
    if el is None:
        return None
    for attr in ("href", "src", "data", "poster"):
        if el.get(attr):
            return urljoin(base_url, str(el[attr]))
    if _is_root(el):
        nested = _prop(el, "u-url")
        if nested is not None:
            return _url_value(nested, base_url)
    text = _text(el)
    return urljoin(base_url, text) if text else None


def _dt_value(el: Optional[Tag]) -> Optional[str]:
    if el is None:
        return None
    for attr in ("datetime", "value", "title"):
        if el.get(attr):
            return str(el[attr])
    return el.get_text(strip=True) or None


def _head_link(soup: BeautifulSoup, rel: str, base_url: str) -> Optional[str]:
    for tag in soup.find_all(["link", "a"], rel=rel):
        if isinstance(tag, Tag) and tag.get("href"):
            return urljoin(base_url, str(tag["href"]))
    return None
