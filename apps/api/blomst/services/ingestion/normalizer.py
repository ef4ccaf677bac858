"""Shopify order payload -> CanonicalOrder.

The same normalizer is used for webhook pushes, polled order lists and the
backfill, so an order always looks identical no matter how it arrived.
"""

import logging
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from blomst.schemas.order import (
    ActorRole,
    CanonicalOrder,
    Customer,
    LineItem,
    OrderStatus,
    ShippingAddress,
)
from blomst.services.ingestion.addons import AddOnExtractor, describe_payload
from blomst.services.ingestion.delivery import DeliveryDateExtractor, parse_timestamp
from blomst.services.ingestion.payload import (
    as_mapping,
    as_name_value_pairs,
    as_text,
    line_items,
)
from blomst.services.ingestion.zones import ZoneConfig, ZoneMatcher

logger = logging.getLogger(__name__)

DEFAULT_PLATFORM = "shopify"
ORDER_NUMBER_DIGITS = 7


def _full_name(first: Any, last: Any) -> str:
    return f"{as_text(first).strip()} {as_text(last).strip()}".strip()


def _optional_text(value: Any) -> str | None:
    text = as_text(value).strip()
    return text or None


def _quantity(value: Any) -> int:
    try:
        return max(int(value), 1)
    except (TypeError, ValueError):
        return 1


def generate_order_number() -> str:
    """Return a random 7-digit internal order number (no leading zero)."""
    low = 10 ** (ORDER_NUMBER_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


def _line_item_note(item: Mapping[str, Any]) -> str:
    for pair in as_name_value_pairs(item.get("properties")):
        if pair.name.strip().lower() == "note":
            return pair.value.strip()
    return ""


class OrderNormalizer:
    """Compose zone matching, delivery and add-on extraction into one record."""

    def __init__(
        self,
        zone_matcher: ZoneMatcher | None = None,
        delivery_extractor: DeliveryDateExtractor | None = None,
        addon_extractor: AddOnExtractor | None = None,
        platform: str = DEFAULT_PLATFORM,
    ) -> None:
        self.zone_matcher = zone_matcher or ZoneMatcher(ZoneConfig())
        self.delivery_extractor = delivery_extractor or DeliveryDateExtractor()
        self.addon_extractor = addon_extractor or AddOnExtractor()
        self.platform = platform

    def normalize(
        self,
        payload: Mapping[str, Any] | None,
        *,
        received_at: datetime | None = None,
    ) -> CanonicalOrder:
        """Build the canonical order for a raw payload.

        Args:
            payload: Raw order JSON. Read only.
            received_at: Ingestion time; defaults to now. Pass it explicitly
                to get byte-identical output for identical input.

        Returns:
            The canonical order, status ``new`` and unassigned.
        """
        order = as_mapping(payload)
        shipping = as_mapping(order.get("shipping_address"))
        customer = as_mapping(order.get("customer"))

        source_id = _optional_text(order.get("id"))
        postal_code = _optional_text(shipping.get("zip"))

        delivery = self.delivery_extractor.extract(order)
        add_ons = self.addon_extractor.extract(order)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Add-on sources for order %s: %s", source_id, describe_payload(order)
            )

        return CanonicalOrder(
            source_platform=self.platform if source_id else None,
            source_order_id=source_id,
            source_order_number=_optional_text(order.get("order_number") or order.get("number")),
            order_name=_optional_text(order.get("name")),
            received_at=received_at or datetime.now(UTC),
            order_date=parse_timestamp(order.get("created_at")),
            delivery_date=delivery.delivery_date,
            delivery_option=delivery.delivery_option,
            line_items=[
                LineItem(
                    sku=as_text(item.get("sku")),
                    name=as_text(item.get("name") or item.get("title")),
                    quantity=_quantity(item.get("quantity")),
                    notes=_line_item_note(item),
                )
                for item in line_items(order)
            ],
            add_ons=add_ons.add_ons,
            add_ons_summary=add_ons.summary,
            customer=Customer(
                name=_full_name(shipping.get("first_name"), shipping.get("last_name"))
                or as_text(shipping.get("name")).strip()
                or _full_name(customer.get("first_name"), customer.get("last_name")),
                phone=as_text(shipping.get("phone") or customer.get("phone")),
                email=as_text(order.get("email") or customer.get("email")),
                message=as_text(order.get("note")),
            ),
            shipping_address=ShippingAddress(
                address1=_optional_text(shipping.get("address1")),
                address2=_optional_text(shipping.get("address2")),
                postal_code=postal_code,
                city=_optional_text(shipping.get("city")),
                country=_optional_text(shipping.get("country")),
            ),
            zone=self.zone_matcher.match(postal_code),
            status=OrderStatus.NEW,
            created_by_role=ActorRole.SHOPIFY,
            raw=dict(order),
        )

    def __call__(
        self, payload: Mapping[str, Any] | None, *, received_at: datetime | None = None
    ) -> CanonicalOrder:
        return self.normalize(payload, received_at=received_at)
