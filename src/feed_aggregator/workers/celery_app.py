"""Celery application for background feed refreshes.

Usage (starting a worker)::

    celery -A feed_aggregator.workers.celery_app worker --loglevel=info

Usage (polling through Beat instead of the in-process scheduler)::

    celery -A feed_aggregator.workers.celery_app beat --loglevel=info

Beat runs ``poll_due_feeds`` every ``poll_interval_seconds``.  Deployments
that run :class:`~feed_aggregator.polling.scheduler.SchedulerHandle` in their
web process should not also run Beat.
"""

from __future__ import annotations

from celery import Celery

from feed_aggregator.config.settings import get_settings

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "feed_aggregator",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["feed_aggregator.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3_600,
    task_soft_time_limit=300,
    task_time_limit=600,
    beat_schedule={
        "poll_due_feeds": {
            "task": "feed_aggregator.workers.tasks.poll_due_feeds",
            "schedule": settings.poll_interval_seconds,
            "options": {"expires": settings.poll_interval_seconds},
        },
    },
)
