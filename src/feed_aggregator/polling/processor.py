"""Per-feed ingestion pipeline.

:meth:`FeedProcessor.process_feed` runs, strictly in order:

1. conditional fetch with the feed's stored validators;
2. on 304, a tier advance with no new items and nothing else;
3. normalization, channel filters and idempotent insertion of each entry,
   publishing a ``new-item`` event for every genuinely new row;
4. a tier advance driven by whether anything new was stored, persisted
   together with the fresh validators and any newly discovered title/photo
   (only filling fields that were empty);
5. recording a WebSub hub that differs from the stored one.

Any exception in those steps is caught per feed: the feed is pushed one tier
further back than a plain unchanged poll would put it, and the error message
and time are stored.  Nothing escapes :meth:`process_batch`.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_aggregator.core.cache import Cache, NullCache
from feed_aggregator.core.database import session_scope
from feed_aggregator.core.event_bus import publish_new_item
from feed_aggregator.core.exceptions import NotFoundError
from feed_aggregator.core.filters import ChannelSettings, passes_filters
from feed_aggregator.core.logging_config import feed_id_var
from feed_aggregator.core.models import Feed, utcnow
from feed_aggregator.feeds.fetcher import FeedFetcher, ParsedFeed
from feed_aggregator.polling.tier import MAX_TIER, advance_tier, next_fetch_time
from feed_aggregator.storage.channels import get_channel_by_id
from feed_aggregator.storage.feeds import (
    FeedUpdate,
    get_feed_by_id,
    update_feed_after_fetch,
    update_feed_websub,
)
from feed_aggregator.storage.items import add_item

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class ProcessResult:
    """Outcome of processing one feed."""

    feed_id: uuid.UUID
    url: str
    success: bool = False
    items_added: int = 0
    tier: Optional[int] = None
    not_modified: bool = False
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass
class BatchSummary:
    """Aggregate outcome of :meth:`FeedProcessor.process_batch`."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    items_added: int = 0
    results: list[ProcessResult] = field(default_factory=list)


@dataclass(frozen=True)
class FeedSnapshot:
    """The feed fields the pipeline reads, detached from any session."""

    id: uuid.UUID
    channel_id: uuid.UUID
    url: str
    tier: int
    unmodified_streak: int
    etag: Optional[str]
    last_modified: Optional[str]
    title: Optional[str]
    photo: Optional[str]
    websub_hub: Optional[str]

    @classmethod
    def from_feed(cls, feed: Feed) -> FeedSnapshot:
        return cls(
            id=feed.id,
            channel_id=feed.channel_id,
            url=feed.url,
            tier=feed.tier or 0,
            unmodified_streak=feed.unmodified_streak or 0,
            etag=feed.etag,
            last_modified=feed.last_modified,
            title=feed.title,
            photo=feed.photo,
            websub_hub=feed.websub_hub,
        )


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class FeedProcessor:
    """Fetch → normalize → filter → store → reschedule, one feed at a time.

    Args:
        session_factory: Factory for database sessions.  Each feed is
            processed in its own session and transaction.
        fetcher: The conditional fetcher.
        cache: Broker used for new-item events; defaults to the fetcher's.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: FeedFetcher,
        cache: Optional[Cache] = None,
    ) -> None:
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.cache: Cache = cache if cache is not None else (fetcher.cache or NullCache())

    async def process_feed(self, feed: Feed | FeedSnapshot) -> ProcessResult:
        """Process one feed.  Never raises.

        Returns:
            A :class:`ProcessResult`; ``error`` carries the failure message
            when ``success`` is ``False``.
        """
        snapshot = feed if isinstance(feed, FeedSnapshot) else FeedSnapshot.from_feed(feed)
        token = feed_id_var.set(str(snapshot.id))
        started = time.perf_counter()
        result = ProcessResult(feed_id=snapshot.id, url=snapshot.url)
        try:
            parsed = await self.fetcher.fetch_and_parse(
                snapshot.url,
                etag=snapshot.etag,
                last_modified=snapshot.last_modified,
            )
            if parsed.not_modified:
                await self._record_not_modified(snapshot, result)
            else:
                await self._ingest(snapshot, parsed, result)
            result.success = True
        except Exception as exc:  # noqa: BLE001
            result.error = str(exc) or exc.__class__.__name__
            logger.warning("processor: feed %s failed: %s", snapshot.url, result.error)
            await self._record_failure(snapshot, result.error)
        finally:
            result.duration_ms = int((time.perf_counter() - started) * 1000)
            feed_id_var.reset(token)

        logger.info(
            "processor: feed %s success=%s items_added=%d tier=%s duration_ms=%d",
            snapshot.url,
            result.success,
            result.items_added,
            result.tier,
            result.duration_ms,
        )
        return result

    async def process_batch(
        self,
        feeds: Sequence[Feed | FeedSnapshot],
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> BatchSummary:
        """Process feeds in consecutive waves of at most ``concurrency``.

        Each wave runs in parallel and must finish before the next starts.
        Results keep the input order.
        """
        concurrency = max(1, concurrency)
        snapshots = [f if isinstance(f, FeedSnapshot) else FeedSnapshot.from_feed(f) for f in feeds]
        summary = BatchSummary(total=len(snapshots))

        for start in range(0, len(snapshots), concurrency):
            wave = snapshots[start:start + concurrency]
            outcomes = await asyncio.gather(
                *(self.process_feed(snapshot) for snapshot in wave),
                return_exceptions=True,
            )
            for snapshot, outcome in zip(wave, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("processor: unexpected error for %s: %s", snapshot.url, outcome)
                    outcome = ProcessResult(feed_id=snapshot.id, url=snapshot.url, error=str(outcome))
                summary.results.append(outcome)

        summary.successful = sum(1 for r in summary.results if r.success)
        summary.failed = summary.total - summary.successful
        summary.items_added = sum(r.items_added for r in summary.results)
        logger.info(
            "processor: batch done total=%d successful=%d failed=%d items_added=%d",
            summary.total,
            summary.successful,
            summary.failed,
            summary.items_added,
        )
        return summary

    async def refresh_feed_by_id(self, feed_id: Any) -> ProcessResult:
        """Load a feed by id and process it (used by the background refresh).

        Raises:
            NotFoundError: No feed has that id.
        """
        async with self.session_factory() as session:
            feed = await get_feed_by_id(session, feed_id)
            if feed is None:
                raise NotFoundError("Feed not found", resource="feed")
            snapshot = FeedSnapshot.from_feed(feed)
        return await self.process_feed(snapshot)

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def _record_not_modified(self, feed: FeedSnapshot, result: ProcessResult) -> None:
        now = utcnow()
        state = advance_tier(feed.tier, False, feed.unmodified_streak, now=now)
        async with session_scope(self.session_factory) as session:
            await update_feed_after_fetch(
                session,
                feed.id,
                FeedUpdate(
                    tier=state.tier,
                    unmodified_streak=state.unmodified_streak,
                    next_fetch_at=state.next_fetch_at,
                    last_fetched_at=now,
                ),
            )
        result.not_modified = True
        result.tier = state.tier

    async def _ingest(self, feed: FeedSnapshot, parsed: ParsedFeed, result: ProcessResult) -> None:
        now = utcnow()
        new_items: list[dict[str, Any]] = []
        async with session_scope(self.session_factory) as session:
            channel = await get_channel_by_id(session, feed.channel_id)
            settings = ChannelSettings.from_channel(channel) if channel is not None else None

            for item in parsed.items:
                if not passes_filters(item, settings):
                    continue
                stored = await add_item(session, feed.channel_id, feed.id, item, now=now)
                if stored is not None:
                    new_items.append(stored.to_jf2())

            state = advance_tier(feed.tier, bool(new_items), feed.unmodified_streak, now=now)
            await update_feed_after_fetch(
                session,
                feed.id,
                FeedUpdate(
                    tier=state.tier,
                    unmodified_streak=state.unmodified_streak,
                    next_fetch_at=state.next_fetch_at,
                    last_fetched_at=now,
                    refresh_validators=True,
                    etag=parsed.fetch.etag,
                    last_modified=parsed.fetch.last_modified,
                    title=parsed.name if parsed.name and not feed.title else None,
                    photo=parsed.photo if parsed.photo and not feed.photo else None,
                ),
            )

            if parsed.hub and parsed.hub != feed.websub_hub:
                logger.info("processor: feed %s advertises hub %s", feed.url, parsed.hub)
                await update_feed_websub(
                    session,
                    feed.id,
                    hub=parsed.hub,
                    topic=parsed.self_url or feed.url,
                    now=now,
                )

        for entry in new_items:
            await publish_new_item(self.cache, feed.channel_id, entry)

        result.items_added = len(new_items)
        result.tier = state.tier

    async def _record_failure(self, feed: FeedSnapshot, message: str) -> None:
        """Back off a failing feed one tier beyond an ordinary unchanged poll."""
        now = utcnow()
        state = advance_tier(feed.tier, False, feed.unmodified_streak + 1, now=now)
        tier = min(state.tier + 1, MAX_TIER)
        try:
            async with session_scope(self.session_factory) as session:
                await update_feed_after_fetch(
                    session,
                    feed.id,
                    FeedUpdate(
                        tier=tier,
                        unmodified_streak=state.unmodified_streak,
                        next_fetch_at=next_fetch_time(tier, now),
                        last_fetched_at=now,
                        last_error=message,
                        last_error_at=now,
                    ),
                )
        except Exception as exc:  # noqa: BLE001
            logger.error("processor: could not record failure for %s: %s", feed.url, exc)
