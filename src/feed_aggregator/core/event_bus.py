"""Pub/sub fan-out of timeline events.

The ingestion processor calls :func:`publish_new_item` for every item that
was genuinely inserted.  Live readers (an SSE endpoint in the host web layer)
subscribe to the channel's topic through :func:`subscribe_channel`.

Topic naming convention::

    microsub:{channel_id}

Message shape::

    {
        "type": "new-item",
        "channelId": "5b0f...",     # internal channel id as a string
        "item": { ...JF2 entry... }
    }

Publishing is fire-and-forget: the cache swallows and logs broker errors.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from feed_aggregator.core.cache import Cache

logger = logging.getLogger(__name__)


def channel_topic(channel_id: Any) -> str:
    """Return the pub/sub topic for ``channel_id``."""
    return f"microsub:{channel_id}"


async def publish_new_item(cache: Cache, channel_id: Any, item: dict[str, Any]) -> None:
    """Announce a newly stored item to subscribers of its channel.

    Args:
        cache: The cache / broker capability.
        channel_id: Internal channel id.
        item: The stored JF2 entry.
    """
    payload = {
        "type": "new-item",
        "channelId": str(channel_id),
        "item": item,
    }
    await cache.publish(channel_topic(channel_id), payload)
    logger.debug("event_bus: published new-item channel=%s uid=%s", channel_id, item.get("uid"))


def subscribe_channel(cache: Cache, channel_id: Any) -> AsyncIterator[Any]:
    """Return an async iterator over events published for ``channel_id``."""
    return cache.subscribe(channel_topic(channel_id))
