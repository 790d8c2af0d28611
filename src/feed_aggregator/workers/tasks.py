"""Celery tasks for feed ingestion.

- ``refresh_feed`` processes one feed right away (dispatched by ``follow``).
- ``poll_due_feeds`` runs one scheduler tick (driven by Beat).

Both bridge to the async engine via ``asyncio.run()`` with a fresh
:class:`~feed_aggregator.app.FeedAggregator` per invocation.  Failures are
logged at ERROR level and not re-raised; a feed that failed is already
rescheduled by the processor.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any

import structlog

from feed_aggregator.app import FeedAggregator
from feed_aggregator.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def _refresh(feed_id: str) -> dict[str, Any]:
    aggregator = FeedAggregator.from_settings()
    try:
        result = await aggregator.processor.refresh_feed_by_id(feed_id)
    finally:
        await aggregator.aclose()
    return {**asdict(result), "feed_id": str(result.feed_id)}


async def _poll() -> dict[str, Any]:
    aggregator = FeedAggregator.from_settings()
    try:
        summary = await aggregator.scheduler.run_once()
    finally:
        await aggregator.aclose()
    return {
        "total": summary.total,
        "successful": summary.successful,
        "failed": summary.failed,
        "items_added": summary.items_added,
    }


@celery_app.task(name="feed_aggregator.workers.tasks.refresh_feed")
def refresh_feed(feed_id: str) -> dict[str, Any]:
    """Fetch and ingest one feed immediately.

    Args:
        feed_id: String UUID of the feed.

    Returns:
        The processing result as a dict, or ``{"feed_id", "error"}`` when the
        feed could not be loaded.
    """
    log = logger.bind(task="refresh_feed", feed_id=feed_id)
    log.info("refresh_feed: starting")
    try:
        result = asyncio.run(_refresh(feed_id))
    except Exception as exc:  # noqa: BLE001
        log.error("refresh_feed: failed", error=str(exc), exc_info=True)
        return {"feed_id": feed_id, "error": str(exc)}
    log.info(
        "refresh_feed: complete",
        success=result["success"],
        items_added=result["items_added"],
        tier=result["tier"],
    )
    return result


@celery_app.task(name="feed_aggregator.workers.tasks.poll_due_feeds")
def poll_due_feeds() -> dict[str, Any]:
    """Process every feed whose next fetch time has passed.

    Returns:
        Batch counters: ``total``, ``successful``, ``failed``, ``items_added``.
    """
    log = logger.bind(task="poll_due_feeds")
    try:
        summary = asyncio.run(_poll())
    except Exception as exc:  # noqa: BLE001
        log.error("poll_due_feeds: failed", error=str(exc), exc_info=True)
        return {"total": 0, "successful": 0, "failed": 0, "items_added": 0, "error": str(exc)}
    log.info("poll_due_feeds: complete", **summary)
    return summary
