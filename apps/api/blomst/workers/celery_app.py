"""Celery application configuration."""

from typing import Any

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from blomst.core.config import settings
from blomst.core.logging_config import setup_logging

# Create Celery app
celery_app = Celery(
    "blomst",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=[
        "blomst.workers.tasks.orders",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task safety limits
    task_time_limit=300,
    task_soft_time_limit=240,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Default queue name (must match worker -Q flag)
    task_default_queue="default",
    # Polling and backfills stay off the webhook queue
    task_routes={
        "tasks.orders.sync_orders": {"queue": "sync"},
        "tasks.orders.backfill_delivery_dates": {"queue": "sync"},
    },
    # Beat schedule (for periodic tasks)
    beat_schedule={
        "sync-shopify-orders": {
            "task": "tasks.orders.sync_orders",
            "schedule": settings.order_sync_interval_seconds,
        },
    },
)


@celery_setup_logging.connect
def _configure_worker_logging(**_kwargs: Any) -> None:
    """Use the API's JSON logging in workers instead of Celery's default."""
    setup_logging(debug=settings.debug, service="worker")


# Task base class with common error handling
class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task class with error handling."""

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600  # Max 10 minutes between retries
    retry_jitter = True
    max_retries = 3
