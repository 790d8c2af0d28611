"""Canonical (JF2) feed and item model.

Every supported input format (RSS, Atom, JSON Feed, h-feed) is normalized
into these models before filtering and storage.  Field names follow JF2;
the hyphenated interaction properties are exposed through aliases so that
both ``item.like_of`` and ``item.model_dump(by_alias=True)["like-of"]`` work.

Example JF2 output of :meth:`CanonicalItem.to_jf2`::

    {
        "type": "entry",
        "uid": "3f0c9a6e1b2d4c5e6f708192",
        "url": "https://example.com/post/1",
        "name": "Post title",
        "content": {"text": "Hello world", "html": "<p>Hello world</p>"},
        "published": "2024-01-15T10:00:00+00:00",
        "author": {"type": "card", "name": "Jane", "url": "https://jane.example"},
        "category": ["tech"],
        "photo": [], "video": [], "audio": [],
        "like-of": [], "repost-of": [], "bookmark-of": [], "in-reply-to": [],
        "_is_read": false
    }
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Author(BaseModel):
    """A JF2 ``card`` describing an author or feed owner."""

    type: Literal["card"] = "card"
    name: Optional[str] = None
    url: Optional[str] = None
    photo: Optional[str] = None


class Content(BaseModel):
    """Entry body in both HTML and plain text form."""

    text: Optional[str] = None
    html: Optional[str] = None


class CanonicalItem(BaseModel):
    """One normalized feed entry.

    Attributes:
        uid: Deterministic identifier derived from the feed URL and the
            entry's native id.  See ``feeds.normalizer.generate_item_uid``.
        published: Publication time.  ``None`` when the source omits it;
            the processor substitutes the ingestion time before storing.
        like_of / repost_of / bookmark_of / in_reply_to: Interaction target
            URLs.  A non-empty list marks the entry as that interaction type.
        rsvp: RSVP value (``"yes"``, ``"no"``, ``"maybe"``, ``"interested"``).
        checkin: Location card for check-ins.
        source: Description of the feed the entry came from (``_source``).
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["entry"] = "entry"
    uid: str
    url: Optional[str] = None
    name: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[Content] = None
    published: Optional[datetime] = None
    updated: Optional[datetime] = None
    author: Optional[Author] = None
    category: list[str] = Field(default_factory=list)
    photo: list[str] = Field(default_factory=list)
    video: list[str] = Field(default_factory=list)
    audio: list[str] = Field(default_factory=list)
    like_of: list[str] = Field(default_factory=list, alias="like-of")
    repost_of: list[str] = Field(default_factory=list, alias="repost-of")
    bookmark_of: list[str] = Field(default_factory=list, alias="bookmark-of")
    in_reply_to: list[str] = Field(default_factory=list, alias="in-reply-to")
    rsvp: Optional[str] = None
    checkin: Optional[dict[str, Any]] = None
    is_read: bool = Field(default=False, alias="_is_read")
    source: Optional[dict[str, Any]] = Field(default=None, alias="_source")

    def to_jf2(self) -> dict[str, Any]:
        """Return the JSON-serializable JF2 dict for storage and events."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CanonicalFeed(BaseModel):
    """A normalized feed document.

    ``hub`` and ``self_url`` are WebSub endpoints advertised inside the
    document body.  The fetcher lets a ``Link`` response header override
    ``hub``.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["feed"] = "feed"
    url: Optional[str] = None
    name: Optional[str] = None
    summary: Optional[str] = None
    photo: Optional[str] = None
    author: Optional[Author] = None
    items: list[CanonicalItem] = Field(default_factory=list)
    hub: Optional[str] = None
    self_url: Optional[str] = Field(default=None, alias="self")
