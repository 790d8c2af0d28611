"""Read-side response shapes handed to the hosting web layer.

These schemas are built from ORM rows via ``model_validate(row)`` and carry
no behaviour.  Routing and serialization to the wire belong to the host.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict


class ChannelResponse(BaseModel):
    """A channel as listed to its owner.

    ``unread`` is the unread item count, or ``False`` when there is nothing
    unread.
    """

    uid: str
    name: str
    unread: Union[int, bool] = False

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_channel(cls, channel: Any, unread: int = 0) -> ChannelResponse:
        return cls(uid=channel.uid, name=channel.name, unread=unread if unread > 0 else False)


class FeedResponse(BaseModel):
    """A followed feed as a JF2 ``feed`` object."""

    type: Literal["feed"] = "feed"
    url: str
    name: Optional[str] = None
    photo: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_feed(cls, feed: Any) -> FeedResponse:
        return cls(url=feed.url, name=feed.title, photo=feed.photo)


class Paging(BaseModel):
    """Page-boundary cursors.  Absent keys mean "no page in that direction"."""

    before: Optional[str] = None
    after: Optional[str] = None


class TimelineResponse(BaseModel):
    """One page of a channel timeline, newest first."""

    items: list[dict[str, Any]] = []
    paging: Optional[Paging] = None

    def to_jf2(self) -> dict[str, Any]:
        body: dict[str, Any] = {"items": self.items}
        if self.paging is not None:
            paging = self.paging.model_dump(exclude_none=True)
            if paging:
                body["paging"] = paging
        return body
