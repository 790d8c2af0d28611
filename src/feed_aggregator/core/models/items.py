"""Timeline item ORM model.

Items are written once by the ingestion processor and afterwards only their
``is_read`` flag changes.  ``uid`` is derived from the source feed URL and the
entry's native id, so re-ingesting the same entry hits the
``(channel_id, uid)`` unique constraint and is dropped by the insert itself.

``data`` holds the canonical JF2 representation of the entry.  ``name`` and
``content_text`` are denormalized copies used by search.  ``feed_id`` is
nulled when the source subscription is removed; the items stay.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from feed_aggregator.core.models.base import Base, JSONType, UTCDateTime, utcnow


class Item(Base):
    """One canonical, deduplicated entry in a channel's timeline."""

    __tablename__ = "items"
    __table_args__ = (
        sa.UniqueConstraint("channel_id", "uid", name="uq_items_channel_uid"),
        sa.Index("ix_items_channel_published_id", "channel_id", "published", "id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    channel_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("channels.id", ondelete="CASCADE"),
        nullable=False,
    )
    feed_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("feeds.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    uid: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    published: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    url: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    content_text: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    is_read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    def to_jf2(self) -> dict[str, Any]:
        """Return the stored JF2 entry with storage-level fields merged in.

        ``_id`` is the timeline position identifier used for read state and
        removal; ``_is_read`` reflects the current read flag.
        """
        entry = dict(self.data)
        entry["_id"] = str(self.id)
        entry["_is_read"] = self.is_read
        entry.setdefault("published", self.published.isoformat())
        return entry

    def __repr__(self) -> str:
        return f"<Item uid={self.uid!r} channel_id={self.channel_id} published={self.published}>"
