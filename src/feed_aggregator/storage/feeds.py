"""Feed subscription storage.

``create_feed`` is idempotent on ``(channel_id, url)``: a second follow of the
same URL returns the existing row untouched.  ``update_feed_after_fetch``
persists the complete post-fetch state computed by the ingestion processor
(tier, streak, next fetch time, validators, discovered metadata and error
fields) in a single UPDATE.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feed_aggregator.core.models import Feed, Item, utcnow
from feed_aggregator.polling.tier import initial_tier_state
from feed_aggregator.storage._dialect import insert_for

logger = logging.getLogger(__name__)


@dataclass
class FeedUpdate:
    """Post-fetch state of a feed.

    Polling fields are always written.  ``etag`` / ``last_modified`` are
    written only when ``refresh_validators`` is set, since a 304 or an error
    must keep the previous validators.  ``title`` / ``photo`` are written
    only when not ``None``; the processor passes them only to fill empty
    fields.  ``last_error`` / ``last_error_at`` are written only when not
    ``None``, so a success leaves the last recorded error in place.
    """

    tier: int
    unmodified_streak: int
    next_fetch_at: datetime
    last_fetched_at: Optional[datetime] = None
    refresh_validators: bool = False
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    title: Optional[str] = None
    photo: Optional[str] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def to_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            "tier": self.tier,
            "unmodified_streak": self.unmodified_streak,
            "next_fetch_at": self.next_fetch_at,
        }
        if self.last_fetched_at is not None:
            values["last_fetched_at"] = self.last_fetched_at
        if self.refresh_validators:
            values["etag"] = self.etag
            values["last_modified"] = self.last_modified
        for name in ("title", "photo", "last_error", "last_error_at"):
            value = getattr(self, name)
            if value is not None:
                values[name] = value
        return values


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


async def create_feed(
    session: AsyncSession,
    channel_id: uuid.UUID,
    url: str,
    title: Optional[str] = None,
    photo: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Feed:
    """Subscribe a channel to ``url``, or return the existing subscription.

    New feeds start at the fastest tier and are due immediately.
    """
    state = initial_tier_state(now)
    stmt = (
        insert_for(session)(Feed)
        .values(
            id=uuid.uuid4(),
            channel_id=channel_id,
            url=url,
            title=title or None,
            photo=photo or None,
            tier=state.tier,
            unmodified_streak=state.unmodified_streak,
            next_fetch_at=state.next_fetch_at,
        )
        .on_conflict_do_nothing(index_elements=["channel_id", "url"])
        .returning(Feed.id)
    )
    inserted = (await session.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        logger.debug("feeds: %s already followed in channel %s", url, channel_id)
    feed = await get_feed_by_url(session, channel_id, url)
    if feed is None:
        raise RuntimeError(f"feed {url!r} vanished after insert")
    return feed


async def get_feed_by_id(session: AsyncSession, feed_id: Any) -> Optional[Feed]:
    try:
        key = feed_id if isinstance(feed_id, uuid.UUID) else uuid.UUID(str(feed_id))
    except ValueError:
        return None
    return await session.get(Feed, key, populate_existing=True)


async def get_feed_by_url(session: AsyncSession, channel_id: uuid.UUID, url: str) -> Optional[Feed]:
    stmt = select(Feed).where(Feed.channel_id == channel_id, Feed.url == url)
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_feeds_for_channel(session: AsyncSession, channel_id: uuid.UUID) -> list[Feed]:
    stmt = select(Feed).where(Feed.channel_id == channel_id).order_by(Feed.created_at, Feed.url)
    return list((await session.execute(stmt)).scalars().all())


async def get_feeds_to_fetch(
    session: AsyncSession,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[Feed]:
    """Return feeds whose ``next_fetch_at`` is unset or not in the future.

    Most overdue first; never-scheduled feeds lead.
    """
    now = now or utcnow()
    stmt = (
        select(Feed)
        .where(or_(Feed.next_fetch_at.is_(None), Feed.next_fetch_at <= now))
        .order_by(Feed.next_fetch_at.asc().nulls_first(), Feed.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


async def update_feed_after_fetch(session: AsyncSession, feed_id: uuid.UUID, changes: FeedUpdate) -> bool:
    """Persist the post-fetch state of a feed.

    Returns:
        ``True`` if the feed still existed.
    """
    result = await session.execute(
        update(Feed).where(Feed.id == feed_id).values(**changes.to_values())
    )
    return bool(result.rowcount)


async def update_feed_websub(
    session: AsyncSession,
    feed_id: uuid.UUID,
    hub: str,
    topic: Optional[str] = None,
    secret: Optional[str] = None,
    lease_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Record a discovered WebSub hub (and, once subscribed, its lease)."""
    now = now or utcnow()
    expires_at = now + timedelta(seconds=lease_seconds) if lease_seconds else None
    result = await session.execute(
        update(Feed)
        .where(Feed.id == feed_id)
        .values(
            websub_hub=hub,
            websub_topic=topic,
            websub_secret=secret,
            websub_lease_seconds=lease_seconds,
            websub_expires_at=expires_at,
        )
    )
    return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


async def delete_feed(session: AsyncSession, channel_id: uuid.UUID, url: str) -> bool:
    """Unsubscribe a channel from ``url``.  Stored items stay in the timeline."""
    feed = await get_feed_by_url(session, channel_id, url)
    if feed is None:
        return False
    await session.execute(update(Item).where(Item.feed_id == feed.id).values(feed_id=None))
    await session.execute(delete(Feed).where(Feed.id == feed.id))
    return True


async def delete_feeds_for_channel(session: AsyncSession, channel_id: uuid.UUID) -> int:
    await session.execute(
        update(Item)
        .where(Item.feed_id.in_(select(Feed.id).where(Feed.channel_id == channel_id)))
        .values(feed_id=None)
    )
    result = await session.execute(delete(Feed).where(Feed.channel_id == channel_id))
    return result.rowcount or 0
