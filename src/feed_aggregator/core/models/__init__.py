"""ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from __future__ import annotations

from feed_aggregator.core.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from feed_aggregator.core.models.channels import Channel
from feed_aggregator.core.models.feeds import Feed
from feed_aggregator.core.models.items import Item

__all__ = [
    "Base",
    "Channel",
    "Feed",
    "Item",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
]
