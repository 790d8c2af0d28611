"""Background refresh dispatchers used by :func:`feed_aggregator.subscriptions.follow`.

A dispatcher is any callable taking a feed id.  It hands the first fetch of a
newly followed feed to something that runs outside the request, and reports
its own failures through logging rather than to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from feed_aggregator.polling.processor import FeedProcessor

logger = logging.getLogger(__name__)

RefreshDispatcher = Callable[[uuid.UUID], Any]


def celery_dispatcher(feed_id: uuid.UUID) -> None:
    """Enqueue the ``refresh_feed`` Celery task."""
    from feed_aggregator.workers.tasks import refresh_feed  # noqa: PLC0415

    refresh_feed.apply_async(kwargs={"feed_id": str(feed_id)})


class BackgroundTaskDispatcher:
    """Run refreshes as tasks on the current event loop.

    Tasks are tracked until they finish so they are not garbage collected
    mid-flight, and :meth:`drain` lets callers wait for them (on shutdown or
    in tests).
    """

    def __init__(self, processor: FeedProcessor) -> None:
        self.processor = processor
        self._tasks: set[asyncio.Task[Any]] = set()

    def __call__(self, feed_id: uuid.UUID) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(self.processor.refresh_feed_by_id(feed_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("dispatch: background refresh failed: %s", exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
