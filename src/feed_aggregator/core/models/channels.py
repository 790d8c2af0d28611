"""Channel ORM model.

A channel is an owner's named bucket of feed subscriptions with its own
materialized timeline.  ``uid`` is the public identifier exposed to readers;
it is globally unique and never changes after creation.  ``id`` is the
internal surrogate key referenced by feeds and items.

Per-channel ingestion filters live on the row itself:

    exclude_types: ["like", "repost"]   interaction types dropped at ingestion
    exclude_regex: "sponsored|ad:"      case-insensitive pattern, may be NULL
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feed_aggregator.core.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from feed_aggregator.core.models.feeds import Feed


class Channel(Base, TimestampMixin):
    """A subscriber-defined timeline aggregating one or more feeds."""

    __tablename__ = "channels"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    uid: Mapped[str] = mapped_column(
        sa.String(64),
        nullable=False,
        unique=True,
    )
    owner_id: Mapped[str] = mapped_column(
        sa.String(255),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        sa.String(100),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        default=0,
    )
    exclude_types: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )
    exclude_regex: Mapped[Optional[str]] = mapped_column(
        sa.Text,
        nullable=True,
    )

    feeds: Mapped[list[Feed]] = relationship(
        "Feed",
        back_populates="channel",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Channel uid={self.uid!r} owner={self.owner_id!r} name={self.name!r}>"
