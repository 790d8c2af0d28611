"""Channel storage.

Channels are scoped by ``owner_id``.  Each owner has an implicit
notifications channel, created on first use by
:func:`ensure_notifications_channel`, that sorts before every other channel
and cannot be deleted.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import string
import uuid
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_aggregator.core.exceptions import NotFoundError, ValidationError
from feed_aggregator.core.models import Channel, Item
from feed_aggregator.core.schemas.responses import ChannelResponse
from feed_aggregator.core.validation import (
    validate_channel_name,
    validate_exclude_regex,
    validate_exclude_types,
)
from feed_aggregator.storage._dialect import insert_for
from feed_aggregator.storage.feeds import delete_feeds_for_channel

logger = logging.getLogger(__name__)

CHANNEL_UID_LENGTH = 24
NOTIFICATIONS_NAME = "Notifications"
NOTIFICATIONS_POSITION = -1

_UID_ALPHABET = string.ascii_lowercase + string.digits


def generate_channel_uid() -> str:
    """Return a random 24-character lowercase alphanumeric channel uid."""
    return "".join(secrets.choice(_UID_ALPHABET) for _ in range(CHANNEL_UID_LENGTH))


def notifications_uid(owner_id: str) -> str:
    """Deterministic uid of an owner's notifications channel."""
    return "notifications-" + hashlib.sha256(owner_id.encode("utf-8")).hexdigest()[:12]


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


async def create_channel(session: AsyncSession, owner_id: str, name: str) -> Channel:
    """Create a channel at the end of the owner's channel list.

    Raises:
        ValidationError: Empty name or name longer than 100 characters.
    """
    name = validate_channel_name(name)
    max_position = (
        await session.execute(
            select(func.max(Channel.position)).where(Channel.owner_id == owner_id)
        )
    ).scalar_one_or_none()
    channel = Channel(
        uid=generate_channel_uid(),
        owner_id=owner_id,
        name=name,
        position=max(max_position if max_position is not None else -1, -1) + 1,
        exclude_types=[],
    )
    session.add(channel)
    await session.flush()
    logger.info("channels: created channel uid=%s owner=%s", channel.uid, owner_id)
    return channel


async def ensure_notifications_channel(session: AsyncSession, owner_id: str) -> Channel:
    """Return the owner's notifications channel, creating it if needed."""
    uid = notifications_uid(owner_id)
    await session.execute(
        insert_for(session)(Channel)
        .values(
            id=uuid.uuid4(),
            uid=uid,
            owner_id=owner_id,
            name=NOTIFICATIONS_NAME,
            position=NOTIFICATIONS_POSITION,
            exclude_types=[],
        )
        .on_conflict_do_nothing(index_elements=["uid"])
    )
    channel = await get_channel(session, uid, owner_id)
    if channel is None:
        raise RuntimeError(f"notifications channel {uid!r} vanished after insert")
    return channel


async def get_channel(
    session: AsyncSession,
    uid: str,
    owner_id: Optional[str] = None,
) -> Optional[Channel]:
    stmt = select(Channel).where(Channel.uid == uid)
    if owner_id is not None:
        stmt = stmt.where(Channel.owner_id == owner_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_channel_by_id(session: AsyncSession, channel_id: uuid.UUID) -> Optional[Channel]:
    return await session.get(Channel, channel_id)


async def get_channels(session: AsyncSession, owner_id: str) -> list[ChannelResponse]:
    """List the owner's channels in display order with unread counts."""
    unread = (
        select(Item.channel_id, func.count().label("unread"))
        .where(Item.is_read.is_(False))
        .group_by(Item.channel_id)
        .subquery()
    )
    stmt = (
        select(Channel, func.coalesce(unread.c.unread, 0))
        .outerjoin(unread, unread.c.channel_id == Channel.id)
        .where(Channel.owner_id == owner_id)
        .order_by(Channel.position, Channel.created_at)
    )
    rows = (await session.execute(stmt)).all()
    return [ChannelResponse.from_channel(channel, int(count)) for channel, count in rows]


async def require_channel(session: AsyncSession, uid: str, owner_id: str) -> Channel:
    """Like :func:`get_channel` but raises ``NotFoundError("Channel not found")``."""
    channel = await get_channel(session, uid, owner_id)
    if channel is None:
        raise NotFoundError("Channel not found", resource="channel")
    return channel


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


async def update_channel(session: AsyncSession, uid: str, owner_id: str, name: str) -> Channel:
    channel = await require_channel(session, uid, owner_id)
    channel.name = validate_channel_name(name)
    await session.flush()
    return channel


async def update_channel_settings(
    session: AsyncSession,
    uid: str,
    owner_id: str,
    exclude_types: Any = None,
    exclude_regex: Any = None,
) -> Channel:
    """Replace a channel's ingestion filters.

    Unknown interaction types are dropped and an invalid regex clears the
    regex filter; neither raises.
    """
    channel = await require_channel(session, uid, owner_id)
    channel.exclude_types = validate_exclude_types(exclude_types)
    channel.exclude_regex = validate_exclude_regex(exclude_regex)
    await session.flush()
    return channel


async def delete_channel(session: AsyncSession, uid: str, owner_id: str) -> bool:
    """Delete a channel with its feeds and items.

    Raises:
        ValidationError: Attempt to delete the notifications channel.
    """
    if uid == notifications_uid(owner_id):
        raise ValidationError("The notifications channel cannot be deleted", parameter="channel")
    channel = await get_channel(session, uid, owner_id)
    if channel is None:
        return False
    await session.execute(delete(Item).where(Item.channel_id == channel.id))
    await delete_feeds_for_channel(session, channel.id)
    await session.execute(delete(Channel).where(Channel.id == channel.id))
    logger.info("channels: deleted channel uid=%s owner=%s", uid, owner_id)
    return True
