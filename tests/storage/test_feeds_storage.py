"""Storage tests for feed subscriptions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from feed_aggregator.core.models import Channel
from feed_aggregator.core.schemas.canonical import CanonicalItem
from feed_aggregator.storage.feeds import (
    FeedUpdate,
    create_feed,
    delete_feed,
    get_feed_by_id,
    get_feed_by_url,
    get_feeds_for_channel,
    get_feeds_to_fetch,
    update_feed_after_fetch,
    update_feed_websub,
)
from feed_aggregator.storage.items import add_item, get_timeline_items

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
FEED_URL = "https://blog.example.com/feed.xml"


class TestCreateFeed:
    @pytest.mark.asyncio
    async def test_new_feed_starts_fast_and_due(self, db_session: AsyncSession, channel: Channel) -> None:
        feed = await create_feed(db_session, channel.id, FEED_URL, now=NOW)
        await db_session.commit()

        assert feed.url == FEED_URL
        assert feed.tier == 0
        assert feed.unmodified_streak == 0
        assert feed.next_fetch_at == NOW

    @pytest.mark.asyncio
    async def test_following_twice_returns_same_record(self, db_session: AsyncSession, channel: Channel) -> None:
        first = await create_feed(db_session, channel.id, FEED_URL)
        second = await create_feed(db_session, channel.id, FEED_URL, title="Ignored")
        await db_session.commit()

        assert first.id == second.id
        assert second.title is None
        assert len(await get_feeds_for_channel(db_session, channel.id)) == 1

    @pytest.mark.asyncio
    async def test_lookup_helpers(self, db_session: AsyncSession, channel: Channel) -> None:
        feed = await create_feed(db_session, channel.id, FEED_URL)
        await db_session.commit()

        assert (await get_feed_by_id(db_session, feed.id)).url == FEED_URL
        assert (await get_feed_by_id(db_session, str(feed.id))).url == FEED_URL
        assert await get_feed_by_id(db_session, "not-a-uuid") is None
        assert (await get_feed_by_url(db_session, channel.id, FEED_URL)).id == feed.id


class TestDueFeeds:
    @pytest.mark.asyncio
    async def test_only_due_feeds_most_overdue_first(self, db_session: AsyncSession, channel: Channel) -> None:
        due_late = await create_feed(db_session, channel.id, "https://a.example/feed", now=NOW - timedelta(hours=2))
        due_early = await create_feed(db_session, channel.id, "https://b.example/feed", now=NOW - timedelta(minutes=5))
        await create_feed(db_session, channel.id, "https://c.example/feed", now=NOW + timedelta(minutes=5))
        await db_session.commit()

        due = await get_feeds_to_fetch(db_session, now=NOW)

        assert [feed.id for feed in due] == [due_late.id, due_early.id]

    @pytest.mark.asyncio
    async def test_feed_due_exactly_now_is_included(self, db_session: AsyncSession, channel: Channel) -> None:
        await create_feed(db_session, channel.id, FEED_URL, now=NOW)
        await db_session.commit()

        assert len(await get_feeds_to_fetch(db_session, now=NOW)) == 1


class TestUpdateFeed:
    @pytest.mark.asyncio
    async def test_full_update(self, db_session: AsyncSession, channel: Channel) -> None:
        feed = await create_feed(db_session, channel.id, FEED_URL, now=NOW)
        await db_session.commit()

        changed = await update_feed_after_fetch(
            db_session,
            feed.id,
            FeedUpdate(
                tier=2,
                unmodified_streak=1,
                next_fetch_at=NOW + timedelta(minutes=4),
                last_fetched_at=NOW,
                refresh_validators=True,
                etag='"v2"',
                last_modified="Mon, 15 Jan 2024 12:00:00 GMT",
                title="Example Blog",
            ),
        )
        await db_session.commit()

        assert changed
        stored = await get_feed_by_id(db_session, feed.id)
        assert stored.tier == 2
        assert stored.unmodified_streak == 1
        assert stored.next_fetch_at == NOW + timedelta(minutes=4)
        assert stored.etag == '"v2"'
        assert stored.title == "Example Blog"

    @pytest.mark.asyncio
    async def test_validators_and_error_kept_unless_given(self, db_session: AsyncSession, channel: Channel) -> None:
        feed = await create_feed(db_session, channel.id, FEED_URL, now=NOW)
        await update_feed_after_fetch(
            db_session,
            feed.id,
            FeedUpdate(
                tier=0,
                unmodified_streak=0,
                next_fetch_at=NOW,
                refresh_validators=True,
                etag='"v1"',
                last_error="HTTP 500: Internal Server Error",
                last_error_at=NOW,
            ),
        )
        await update_feed_after_fetch(
            db_session,
            feed.id,
            FeedUpdate(tier=1, unmodified_streak=0, next_fetch_at=NOW + timedelta(minutes=2)),
        )
        await db_session.commit()

        stored = await get_feed_by_id(db_session, feed.id)
        assert stored.tier == 1
        assert stored.etag == '"v1"'
        assert stored.last_error == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_missing_feed_reports_false(self, db_session: AsyncSession, channel: Channel) -> None:
        import uuid

        changed = await update_feed_after_fetch(
            db_session, uuid.uuid4(), FeedUpdate(tier=0, unmodified_streak=0, next_fetch_at=NOW)
        )

        assert not changed

    @pytest.mark.asyncio
    async def test_websub_record(self, db_session: AsyncSession, channel: Channel) -> None:
        feed = await create_feed(db_session, channel.id, FEED_URL)
        await update_feed_websub(
            db_session,
            feed.id,
            hub="https://hub.example.com/",
            topic=FEED_URL,
            secret="s3cret",
            lease_seconds=3600,
            now=NOW,
        )
        await db_session.commit()

        stored = await get_feed_by_id(db_session, feed.id)
        assert stored.websub_hub == "https://hub.example.com/"
        assert stored.websub_topic == FEED_URL
        assert stored.websub_expires_at == NOW + timedelta(hours=1)


class TestDeleteFeed:
    @pytest.mark.asyncio
    async def test_unfollow_keeps_items(self, db_session: AsyncSession, channel: Channel) -> None:
        feed = await create_feed(db_session, channel.id, FEED_URL)
        await add_item(db_session, channel.id, feed.id, CanonicalItem(uid="kept", name="Kept"))
        await db_session.commit()

        assert await delete_feed(db_session, channel.id, FEED_URL)
        await db_session.commit()

        assert await get_feed_by_url(db_session, channel.id, FEED_URL) is None
        timeline = await get_timeline_items(db_session, channel.id)
        assert [entry["name"] for entry in timeline.items] == ["Kept"]

    @pytest.mark.asyncio
    async def test_unknown_feed(self, db_session: AsyncSession, channel: Channel) -> None:
        assert not await delete_feed(db_session, channel.id, "https://nope.example/feed")
