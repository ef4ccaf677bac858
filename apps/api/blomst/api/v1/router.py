"""API v1 router combining all route modules."""

from fastapi import APIRouter

from blomst.api.v1 import health, orders, partners, reports
from blomst.api.v1.webhooks import shopify as shopify_webhooks

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Portal orders (admin and partner tokens)
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["orders"],
)

# Partner roster (admin only)
api_router.include_router(
    partners.router,
    prefix="/partners",
    tags=["partners"],
)

# Order reports (admin only)
api_router.include_router(
    reports.router,
    prefix="/reports",
    tags=["reports"],
)

# Shopify webhooks (no auth - verified via HMAC)
api_router.include_router(
    shopify_webhooks.router,
    prefix="/webhooks/shopify",
    tags=["webhooks"],
)
