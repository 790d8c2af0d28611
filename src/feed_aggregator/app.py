"""Composition root.

:class:`FeedAggregator` wires settings, the database engine, the cache, the
fetcher, the processor and the scheduler together.  A hosting process keeps
one instance for its lifetime::

    aggregator = FeedAggregator.from_settings()
    aggregator.start_scheduler()
    ...
    await aggregator.aclose()

Celery tasks build a short-lived instance per invocation, because each
``asyncio.run()`` call gets a fresh event loop and pooled connections cannot
cross loops.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from feed_aggregator.config.settings import Settings, get_settings
from feed_aggregator.core.cache import Cache, build_cache
from feed_aggregator.core.database import build_engine, build_session_factory, create_schema
from feed_aggregator.core.logging_config import configure_logging
from feed_aggregator.core.models import Feed
from feed_aggregator.feeds.fetcher import FeedFetcher
from feed_aggregator.polling.processor import BatchSummary, FeedProcessor, FeedSnapshot, ProcessResult
from feed_aggregator.polling.scheduler import SchedulerHandle

logger = logging.getLogger(__name__)


class FeedAggregator:
    """Holds the long-lived collaborators of the aggregation engine."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Cache,
        fetcher: FeedFetcher,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.cache = cache
        self.fetcher = fetcher
        self.processor = FeedProcessor(session_factory, fetcher, cache=cache)
        self.scheduler = SchedulerHandle(
            session_factory,
            self.processor,
            interval=settings.poll_interval_seconds,
            concurrency=settings.poll_concurrency,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        configure_logs: bool = True,
    ) -> FeedAggregator:
        """Build an aggregator from ``settings`` (default: environment)."""
        settings = settings or get_settings()
        if configure_logs:
            configure_logging(settings.log_level)
        engine = build_engine(settings.database_url)
        cache = build_cache(settings.redis_url)
        fetcher = FeedFetcher(
            cache=cache,
            timeout=settings.fetch_timeout_seconds,
            cache_ttl=settings.fetch_cache_ttl_seconds,
            user_agent=settings.user_agent,
        )
        return cls(settings, engine, build_session_factory(engine), cache, fetcher)

    async def create_schema(self) -> None:
        await create_schema(self.engine)

    async def process_feed(self, feed: Feed | FeedSnapshot) -> ProcessResult:
        return await self.processor.process_feed(feed)

    async def process_batch(
        self,
        feeds: Sequence[Feed | FeedSnapshot],
        concurrency: Optional[int] = None,
    ) -> BatchSummary:
        return await self.processor.process_batch(
            feeds,
            concurrency=concurrency or self.settings.poll_concurrency,
        )

    def start_scheduler(self) -> None:
        self.scheduler.start()

    async def stop_scheduler(self) -> None:
        await self.scheduler.stop()

    async def aclose(self) -> None:
        """Stop polling and release HTTP, cache and database resources."""
        await self.scheduler.stop()
        await self.fetcher.aclose()
        await self.cache.aclose()
        await self.engine.dispose()
        logger.info("app: closed")
