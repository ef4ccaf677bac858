"""Shopify Admin API client using httpx."""

import logging
from typing import Any

import httpx

from blomst.core.config import settings

logger = logging.getLogger(__name__)

# Shopify's maximum page size
MAX_PAGE_SIZE = 250


class ShopifyClient:
    """Async client for the order endpoints of the Shopify Admin REST API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str | None = None,
    ) -> None:
        self.shop_domain = shop_domain
        self.base_url = (
            f"https://{shop_domain}/admin/api/{api_version or settings.shopify_api_version}"
        )
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls) -> "ShopifyClient":
        """Build a client for the configured shop."""
        if not settings.shopify_shop_domain or not settings.shopify_access_token:
            raise RuntimeError("Shopify shop domain and access token must be configured")
        return cls(settings.shopify_shop_domain, settings.shopify_access_token)

    async def get_orders(self, limit: int = 50, status: str = "any") -> list[dict[str, Any]]:
        """Fetch the most recent orders, following Link-header pagination up to ``limit``."""
        orders: list[dict[str, Any]] = []
        page_size = max(1, min(limit, MAX_PAGE_SIZE))
        url: str | None = f"{self.base_url}/orders.json"
        params: dict[str, Any] | None = {"limit": page_size, "status": status}

        async with httpx.AsyncClient(headers=self.headers, timeout=30.0) as client:
            while url and len(orders) < limit:
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
                orders.extend(data.get("orders", []))

                # Cursor-based pagination via Link header; the next URL carries its own query
                url = self._get_next_page_url(response)
                params = None

        logger.info("Fetched %d orders from %s", min(len(orders), limit), self.shop_domain)
        return orders[:limit]

    async def get_order(self, order_id: str | int) -> dict[str, Any] | None:
        """Fetch a single order by its Shopify id, or None if it does not exist."""
        async with httpx.AsyncClient(headers=self.headers, timeout=15.0) as client:
            response = await client.get(f"{self.base_url}/orders/{order_id}.json")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            order: dict[str, Any] | None = response.json().get("order")
            return order

    def _get_next_page_url(self, response: httpx.Response) -> str | None:
        """Extract next page URL from Link header for cursor pagination."""
        link_header = response.headers.get("link", "")
        if not link_header:
            return None

        for part in link_header.split(","):
            if 'rel="next"' in part:
                url: str = part.split(";")[0].strip().strip("<>")
                return url
        return None
