"""Recompute delivery dates for stored orders from their raw payloads.

Runs in-process instead of through the Celery worker, which is handy after
changing the delivery-date parser.

Usage:
    cd apps/api && uv run python -m scripts.backfill_delivery_dates
"""

import asyncio

from blomst.core.config import settings
from blomst.core.database import async_session_maker, engine
from blomst.core.deps import get_order_normalizer
from blomst.core.logging_config import setup_logging
from blomst.services.order_repository import OrderRepository
from blomst.services.order_service import OrderIngestionService


async def main() -> None:
    setup_logging(debug=settings.debug)
    async with async_session_maker() as session:
        service = OrderIngestionService(OrderRepository(session), get_order_normalizer())
        updated = await service.backfill_delivery_dates()
        await session.commit()
    await engine.dispose()

    print(f"Updated delivery dates on {updated} orders")


if __name__ == "__main__":
    asyncio.run(main())
