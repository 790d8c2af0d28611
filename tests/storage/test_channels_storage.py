"""Storage tests for channels."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from feed_aggregator.core.exceptions import NotFoundError, ValidationError
from feed_aggregator.core.models import Channel
from feed_aggregator.core.schemas.canonical import CanonicalItem
from feed_aggregator.storage.channels import (
    create_channel,
    delete_channel,
    ensure_notifications_channel,
    generate_channel_uid,
    get_channel,
    get_channels,
    notifications_uid,
    require_channel,
    update_channel,
    update_channel_settings,
)
from feed_aggregator.storage.feeds import create_feed, get_feeds_for_channel
from feed_aggregator.storage.items import add_item, count_unread


def test_generate_channel_uid() -> None:
    uid = generate_channel_uid()

    assert len(uid) == 24
    assert uid.isalnum() and uid == uid.lower()
    assert uid != generate_channel_uid()


class TestChannels:
    @pytest.mark.asyncio
    async def test_channels_listed_in_order_with_notifications_first(
        self, db_session: AsyncSession, owner_id: str
    ) -> None:
        await create_channel(db_session, owner_id, "Tech")
        await create_channel(db_session, owner_id, "News")
        await ensure_notifications_channel(db_session, owner_id)
        await create_channel(db_session, "someone-else", "Hidden")
        await db_session.commit()

        channels = await get_channels(db_session, owner_id)

        assert [c.name for c in channels] == ["Notifications", "Tech", "News"]
        assert all(c.unread is False for c in channels)

    @pytest.mark.asyncio
    async def test_notifications_channel_is_idempotent(self, db_session: AsyncSession, owner_id: str) -> None:
        first = await ensure_notifications_channel(db_session, owner_id)
        second = await ensure_notifications_channel(db_session, owner_id)

        assert first.id == second.id
        assert first.uid == notifications_uid(owner_id)

    @pytest.mark.asyncio
    async def test_unread_counts(self, db_session: AsyncSession, channel: Channel, owner_id: str) -> None:
        await add_item(db_session, channel.id, None, CanonicalItem(uid="a"))
        await add_item(db_session, channel.id, None, CanonicalItem(uid="b"))
        await db_session.commit()

        [listed] = await get_channels(db_session, owner_id)

        assert listed.uid == channel.uid
        assert listed.unread == 2

    @pytest.mark.asyncio
    async def test_name_validation(self, db_session: AsyncSession, owner_id: str) -> None:
        with pytest.raises(ValidationError, match="100 characters or less"):
            await create_channel(db_session, owner_id, "x" * 101)

    @pytest.mark.asyncio
    async def test_lookup_is_owner_scoped(self, db_session: AsyncSession, channel: Channel, owner_id: str) -> None:
        assert (await get_channel(db_session, channel.uid, owner_id)).id == channel.id
        assert await get_channel(db_session, channel.uid, "intruder") is None
        with pytest.raises(NotFoundError, match="Channel not found"):
            await require_channel(db_session, channel.uid, "intruder")

    @pytest.mark.asyncio
    async def test_rename_and_settings(self, db_session: AsyncSession, channel: Channel, owner_id: str) -> None:
        await update_channel(db_session, channel.uid, owner_id, "Renamed")
        updated = await update_channel_settings(
            db_session, channel.uid, owner_id, exclude_types=["like", "bogus"], exclude_regex="(broken"
        )
        await db_session.commit()

        assert updated.name == "Renamed"
        assert updated.exclude_types == ["like"]
        assert updated.exclude_regex is None

    @pytest.mark.asyncio
    async def test_delete_removes_feeds_and_items(
        self, db_session: AsyncSession, channel: Channel, owner_id: str
    ) -> None:
        feed = await create_feed(db_session, channel.id, "https://blog.example.com/feed.xml")
        await add_item(db_session, channel.id, feed.id, CanonicalItem(uid="x"))
        await db_session.commit()

        assert await delete_channel(db_session, channel.uid, owner_id)
        await db_session.commit()

        assert await get_channel(db_session, channel.uid, owner_id) is None
        assert await get_feeds_for_channel(db_session, channel.id) == []
        assert await count_unread(db_session, channel.id) == 0

    @pytest.mark.asyncio
    async def test_notifications_channel_cannot_be_deleted(self, db_session: AsyncSession, owner_id: str) -> None:
        notifications = await ensure_notifications_channel(db_session, owner_id)

        with pytest.raises(ValidationError):
            await delete_channel(db_session, notifications.uid, owner_id)
