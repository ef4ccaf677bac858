"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

# Re-export auth dependencies for convenience
from blomst.core.auth import (
    AdminActor,
    CurrentActor,
    CurrentUser,
    get_current_actor,
    get_current_user,
    require_role,
)
from blomst.core.config import settings
from blomst.core.database import get_async_session
from blomst.services.ingestion import (
    AddOnExtractor,
    DeliveryDateExtractor,
    OrderNormalizer,
    ZoneConfig,
    ZoneMatcher,
)
from blomst.services.order_repository import OrderRepository
from blomst.services.order_service import OrderManagementService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session, overridable in tests."""
    async for session in get_async_session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_zone_matcher() -> ZoneMatcher:
    """Zone matcher built once from the configured zone table."""
    return ZoneMatcher(ZoneConfig.from_file(settings.zones_file))


@lru_cache
def get_order_normalizer() -> OrderNormalizer:
    """Shared, stateless order normalizer."""
    return OrderNormalizer(
        zone_matcher=get_zone_matcher(),
        delivery_extractor=DeliveryDateExtractor(settings.delivery_timezone),
        addon_extractor=AddOnExtractor(settings.default_currency),
    )


def get_order_repository(db: DBSession) -> OrderRepository:
    return OrderRepository(db)


OrderRepo = Annotated[OrderRepository, Depends(get_order_repository)]


def get_management_service(repository: OrderRepo) -> OrderManagementService:
    return OrderManagementService(
        repository, get_zone_matcher(), tz=settings.delivery_timezone
    )


ManagementService = Annotated[OrderManagementService, Depends(get_management_service)]


__all__ = [
    "AdminActor",
    "CurrentActor",
    "CurrentUser",
    "DBSession",
    "ManagementService",
    "OrderRepo",
    "get_current_actor",
    "get_current_user",
    "get_db",
    "get_management_service",
    "get_order_normalizer",
    "get_order_repository",
    "get_zone_matcher",
    "require_role",
]
