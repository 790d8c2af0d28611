"""In-process polling loop.

:class:`SchedulerHandle` owns one asyncio task that, while running, polls all
due feeds immediately on start and then once every ``interval`` seconds.  A
tick never raises: per-feed failures are absorbed by the processor and a
failure to even load the due set is logged and retried on the next tick.

Deployments that prefer an external clock run the same tick through the
``poll_due_feeds`` Celery task instead (see
:mod:`feed_aggregator.workers.tasks`).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_aggregator.core.models import utcnow
from feed_aggregator.polling.processor import (
    DEFAULT_CONCURRENCY,
    BatchSummary,
    FeedProcessor,
    FeedSnapshot,
)
from feed_aggregator.storage.feeds import get_feeds_to_fetch

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class SchedulerHandle:
    """Start/stop handle around the periodic polling loop.

    Args:
        session_factory: Factory used to load the due feeds.
        processor: Processor that ingests them.
        interval: Seconds between ticks.
        concurrency: Wave size passed to :meth:`FeedProcessor.process_batch`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        processor: FeedProcessor,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.session_factory = session_factory
        self.processor = processor
        self.interval = interval
        self.concurrency = concurrency
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.ticks = 0

    @property
    def state(self) -> SchedulerState:
        if self._task is not None and not self._task.done():
            return SchedulerState.RUNNING
        return SchedulerState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self) -> None:
        """Start polling.  A second call while running does nothing.

        Must be called from within a running event loop.
        """
        if self.is_running:
            logger.debug("scheduler: already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop(self._stop_event))
        logger.info("scheduler: started (interval=%ss, concurrency=%d)", self.interval, self.concurrency)

    async def stop(self) -> None:
        """Stop polling and wait for an in-flight tick to finish."""
        task, event = self._task, self._stop_event
        self._task = None
        self._stop_event = None
        if task is None:
            return
        if event is not None:
            event.set()
        await task
        logger.info("scheduler: stopped after %d tick(s)", self.ticks)

    async def run_once(self) -> BatchSummary:
        """Poll every due feed once.

        Returns:
            The batch summary; an empty summary when the due set could not
            be loaded.
        """
        try:
            async with self.session_factory() as session:
                feeds = await get_feeds_to_fetch(session, now=utcnow())
                snapshots = [FeedSnapshot.from_feed(feed) for feed in feeds]
        except Exception as exc:  # noqa: BLE001
            logger.error("scheduler: could not load due feeds: %s", exc)
            return BatchSummary()

        if not snapshots:
            logger.debug("scheduler: no feeds due")
            return BatchSummary()

        logger.info("scheduler: %d feed(s) due", len(snapshots))
        return await self.processor.process_batch(snapshots, concurrency=self.concurrency)

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.run_once()
            self.ticks += 1
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
