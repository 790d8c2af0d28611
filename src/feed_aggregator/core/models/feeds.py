"""Feed subscription ORM model.

One row per (channel, url) subscription.  Polling state follows the tier
controller in ``feed_aggregator.polling.tier``:

    tier               0..10, the feed is polled every 2**tier minutes
    unmodified_streak  consecutive polls that produced nothing new
    next_fetch_at      NULL or in the past means "due now"

Conditional-fetch validators (``etag``, ``last_modified``) are refreshed
after every successful fetch.  The ``websub_*`` columns record a hub
discovered in the feed or its ``Link`` header; subscription itself is
handled elsewhere.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feed_aggregator.core.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from feed_aggregator.core.models.channels import Channel


class Feed(Base, TimestampMixin):
    """A subscription to one external feed URL on behalf of one channel."""

    __tablename__ = "feeds"
    __table_args__ = (
        sa.UniqueConstraint("channel_id", "url", name="uq_feeds_channel_url"),
        sa.Index("ix_feeds_next_fetch_at", "next_fetch_at"),
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
        index=True,
    )
    url: Mapped[str] = mapped_column(sa.String(2048), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    photo: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    # Conditional fetch validators
    etag: Mapped[Optional[str]] = mapped_column(sa.String(512), nullable=True)
    last_modified: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True)

    # Polling state
    tier: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    unmodified_streak: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    next_fetch_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    last_error_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # WebSub
    websub_hub: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    websub_topic: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    websub_secret: Mapped[Optional[str]] = mapped_column(sa.String(200), nullable=True)
    websub_lease_seconds: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    websub_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    channel: Mapped[Channel] = relationship("Channel", back_populates="feeds")

    def __repr__(self) -> str:
        return f"<Feed url={self.url!r} tier={self.tier} next_fetch_at={self.next_fetch_at}>"
