"""Follow, unfollow, preview and discovery operations.

These are the calls a hosting web layer makes on behalf of a signed-in
owner.  Input is validated first (``ValidationError``), referenced channels
and feeds must exist (``NotFoundError``), and writes are committed here.

``follow`` returns as soon as the subscription is stored.  The first fetch is
handed to a dispatcher and its outcome only affects the feed's polling state.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from feed_aggregator.core.exceptions import NotFoundError
from feed_aggregator.core.schemas.responses import FeedResponse
from feed_aggregator.core.validation import validate_channel, validate_url
from feed_aggregator.feeds.fetcher import FeedFetcher
from feed_aggregator.storage.channels import require_channel
from feed_aggregator.storage.feeds import create_feed, delete_feed, get_feeds_for_channel
from feed_aggregator.workers.dispatch import RefreshDispatcher

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LIMIT = 10


async def follow(
    session: AsyncSession,
    owner_id: str,
    channel_uid: Optional[str],
    url: Optional[str],
    dispatcher: Optional[RefreshDispatcher] = None,
) -> FeedResponse:
    """Subscribe a channel to a feed URL.

    Following a URL the channel already follows returns the existing
    subscription.

    Args:
        session: Database session; committed before dispatch.
        owner_id: Owner of the channel.
        channel_uid: Public channel uid.
        url: Feed URL.
        dispatcher: Receives the feed id for an immediate background
            refresh.  Dispatch errors are logged, never raised.

    Raises:
        ValidationError: Missing channel or invalid URL.
        NotFoundError: The channel does not exist for this owner.
    """
    channel_uid = validate_channel(channel_uid)
    url = validate_url(url)

    channel = await require_channel(session, channel_uid, owner_id)
    feed = await create_feed(session, channel.id, url)
    response = FeedResponse.from_feed(feed)
    feed_id = feed.id
    await session.commit()
    logger.info("subscriptions: %s followed in channel %s", url, channel_uid)

    if dispatcher is not None:
        try:
            dispatcher(feed_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("subscriptions: could not schedule first fetch of %s: %s", url, exc)
    return response


async def unfollow(
    session: AsyncSession,
    owner_id: str,
    channel_uid: Optional[str],
    url: Optional[str],
) -> None:
    """Remove a subscription; items already in the timeline are kept.

    Raises:
        ValidationError: Missing channel or invalid URL.
        NotFoundError: Unknown channel, or the channel does not follow ``url``.
    """
    channel_uid = validate_channel(channel_uid)
    url = validate_url(url)

    channel = await require_channel(session, channel_uid, owner_id)
    if not await delete_feed(session, channel.id, url):
        raise NotFoundError("Feed not found", resource="feed")
    await session.commit()
    logger.info("subscriptions: %s unfollowed from channel %s", url, channel_uid)


async def list_follows(session: AsyncSession, owner_id: str, channel_uid: Optional[str]) -> list[FeedResponse]:
    channel_uid = validate_channel(channel_uid)
    channel = await require_channel(session, channel_uid, owner_id)
    return [FeedResponse.from_feed(feed) for feed in await get_feeds_for_channel(session, channel.id)]


async def preview(
    fetcher: FeedFetcher,
    url: Optional[str],
    limit: int = DEFAULT_PREVIEW_LIMIT,
) -> dict[str, Any]:
    """Fetch and normalize a feed without storing anything.

    Returns:
        ``{"name", "photo", "items"}`` with at most ``limit`` JF2 entries.

    Raises:
        ValidationError: Invalid URL.
        FetchError: The URL could not be fetched.
        ParseError: The response is not a feed.
    """
    url = validate_url(url)
    parsed = await fetcher.fetch_and_parse(url)
    return {
        "name": parsed.name,
        "photo": parsed.photo,
        "items": [item.to_jf2() for item in parsed.items[:max(0, limit)]],
    }


async def discover(fetcher: FeedFetcher, url: Optional[str]) -> list[dict[str, Any]]:
    """List the feeds a page offers (or the URL itself when it is a feed)."""
    url = validate_url(url)
    return await fetcher.discover(url)
