"""Per-channel ingestion filters.

Two pure predicates decide whether an entry enters a channel's timeline:

- the type filter drops entries whose interaction type (like, repost, ...)
  the channel excludes;
- the regex filter drops entries whose name, summary or content matches the
  channel's case-insensitive exclusion pattern.

Filters run at ingestion time, so storage only ever holds the filtered set.
Entries may be given as :class:`CanonicalItem` models or as JF2 dicts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Optional, Union

from feed_aggregator.core.schemas.canonical import CanonicalItem

logger = logging.getLogger(__name__)

VALID_EXCLUDE_TYPES: frozenset[str] = frozenset({
    "like",
    "repost",
    "bookmark",
    "reply",
    "rsvp",
    "checkin",
})

ItemLike = Union[CanonicalItem, dict[str, Any]]

# (JF2 key, camelCase key, interaction type), in detection priority order.
_LIST_INTERACTIONS: tuple[tuple[str, str, str], ...] = (
    ("like-of", "likeOf", "like"),
    ("repost-of", "repostOf", "repost"),
    ("bookmark-of", "bookmarkOf", "bookmark"),
    ("in-reply-to", "inReplyTo", "reply"),
)


@dataclass(frozen=True)
class ChannelSettings:
    """Filter settings of one channel.

    Attributes:
        exclude_types: Interaction types to drop.  Empty means keep all.
        exclude_regex: Case-insensitive exclusion pattern, or ``None``.
    """

    exclude_types: frozenset[str] = field(default_factory=frozenset)
    exclude_regex: Optional[str] = None

    @classmethod
    def from_channel(cls, channel: Any) -> ChannelSettings:
        return cls(
            exclude_types=frozenset(channel.exclude_types or ()),
            exclude_regex=channel.exclude_regex or None,
        )


def _as_dict(item: ItemLike) -> dict[str, Any]:
    if isinstance(item, CanonicalItem):
        return item.model_dump(by_alias=True)
    return item


def detect_interaction_type(item: ItemLike) -> str:
    """Return the entry's interaction type.

    Checks like-of, repost-of, bookmark-of, in-reply-to, rsvp and checkin in
    that order; the first non-empty one wins.  Entries with none of them are
    plain ``"post"`` entries.
    """
    data = _as_dict(item)
    for jf2_key, camel_key, kind in _LIST_INTERACTIONS:
        if data.get(jf2_key) or data.get(camel_key):
            return kind
    if data.get("rsvp"):
        return "rsvp"
    if data.get("checkin") is not None:
        return "checkin"
    return "post"


def passes_type_filter(item: ItemLike, exclude_types: Any) -> bool:
    if not exclude_types:
        return True
    return detect_interaction_type(item) not in exclude_types


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[re.Pattern[str]]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning("filters: ignoring invalid exclude regex %r: %s", pattern, exc)
        return None


def _searchable_text(data: dict[str, Any]) -> str:
    content = data.get("content") or {}
    parts = [
        data.get("name"),
        data.get("summary"),
        content.get("text") if isinstance(content, dict) else None,
        content.get("html") if isinstance(content, dict) else None,
    ]
    return " ".join(part for part in parts if part)


def passes_regex_filter(item: ItemLike, exclude_regex: Optional[str]) -> bool:
    """Return ``False`` when ``exclude_regex`` matches the entry's text.

    An invalid pattern disables the filter instead of raising.
    """
    if not exclude_regex:
        return True
    compiled = _compile(exclude_regex)
    if compiled is None:
        return True
    return compiled.search(_searchable_text(_as_dict(item))) is None


def passes_filters(item: ItemLike, settings: Optional[ChannelSettings]) -> bool:
    """Apply every channel filter to ``item``.  ``None`` settings pass everything."""
    if settings is None:
        return True
    return passes_type_filter(item, settings.exclude_types) and passes_regex_filter(
        item, settings.exclude_regex
    )
