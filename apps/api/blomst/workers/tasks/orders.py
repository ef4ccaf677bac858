"""Celery tasks for order ingestion: webhook processing, polling and backfills."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from blomst.core.config import settings
from blomst.core.database import async_session_maker, engine
from blomst.core.deps import get_order_normalizer
from blomst.integrations.shopify.client import ShopifyClient
from blomst.services.order_repository import OrderRepository
from blomst.services.order_service import InvalidOrderPayloadError, OrderIngestionService
from blomst.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    asyncpg connections are bound to the loop that created them, so pooled
    connections must not outlive the per-task loop.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


# ---------------------------------------------------------------------------
# Webhook processing
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.orders.process_webhook",
    base=BaseTask,
    bind=True,
)
def process_webhook(
    self: BaseTask,  # noqa: ARG001
    topic: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Apply one verified Shopify order webhook."""
    return _run_async(_process_webhook_async(topic, payload))


async def _process_webhook_async(topic: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Async implementation of webhook processing."""
    async with async_session_maker() as session:
        service = OrderIngestionService(OrderRepository(session), get_order_normalizer())
        try:
            result = await service.handle_webhook(topic, payload)
        except InvalidOrderPayloadError:
            logger.warning("Ignoring %s webhook without an order id", topic)
            return {"topic": topic, "status": "ignored", "reason": "no order id"}
        await session.commit()

    if result is None:
        return {"topic": topic, "status": "ignored", "reason": "unhandled topic"}
    return {
        "topic": topic,
        "status": "processed",
        "order_id": str(result.order.id),
        "created": result.created,
        "assigned": result.assigned,
    }


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.orders.sync_orders",
    base=BaseTask,
    bind=True,
)
def sync_orders(self: BaseTask, limit: int | None = None) -> dict[str, Any]:  # noqa: ARG001
    """Poll recent Shopify orders and ingest them."""
    return _run_async(_sync_orders_async(limit or settings.order_sync_limit))


async def _sync_orders_async(limit: int) -> dict[str, Any]:
    """Async implementation of the order poll."""
    if not settings.shopify_shop_domain or not settings.shopify_access_token:
        logger.info("Skipping order sync: Shopify is not configured")
        return {"status": "skipped", "reason": "shopify not configured"}

    client = ShopifyClient.from_settings()
    async with async_session_maker() as session:
        service = OrderIngestionService(OrderRepository(session), get_order_normalizer())
        result = await service.sync(client, limit=limit)
        await session.commit()

    return {"status": "completed", **result.model_dump()}


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.orders.backfill_delivery_dates",
    base=BaseTask,
    bind=True,
)
def backfill_delivery_dates(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Recompute delivery dates for stored orders from their raw payloads."""
    return _run_async(_backfill_delivery_dates_async())


async def _backfill_delivery_dates_async() -> dict[str, Any]:
    """Async implementation of the delivery-date backfill."""
    async with async_session_maker() as session:
        service = OrderIngestionService(OrderRepository(session), get_order_normalizer())
        updated = await service.backfill_delivery_dates()
        await session.commit()

    return {"status": "completed", "updated": updated}
