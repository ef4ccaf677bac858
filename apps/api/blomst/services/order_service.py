"""Order ingestion and portal workflows.

``OrderIngestionService`` turns Shopify payloads (webhook pushes, polled
order lists) into persisted orders and routes them to a partner.
``OrderManagementService`` covers what admins and partners do with those
orders in the portal.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from blomst.integrations.shopify.webhooks import WebhookTopic
from blomst.models.order import Order
from blomst.models.partner import Partner
from blomst.schemas.order import (
    SHOPIFY_ACTOR,
    Actor,
    ActorRole,
    AddOn,
    CanonicalOrder,
    Customer,
    LineItem,
    ManualOrderCreate,
    OrderStatus,
    ShippingAddress,
    SyncResponse,
)
from blomst.services.ingestion.addons import AddOnSource, summarize
from blomst.services.ingestion.delivery import (
    DEFAULT_TIMEZONE,
    DeliveryDateExtractor,
    DeliveryOption,
    extract_delivery_from_stored,
    parse_timestamp,
    today_in,
)
from blomst.services.ingestion.normalizer import OrderNormalizer
from blomst.services.ingestion.partners import resolve_partner
from blomst.services.ingestion.payload import as_list, as_mapping, as_text
from blomst.services.ingestion.zones import ZoneMatcher
from blomst.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)

FULFILLED = "fulfilled"

# JSONB columns that cannot be cleared from the portal
NESTED_FIELDS = frozenset({"customer", "shipping_address", "line_items"})


class InvalidOrderPayloadError(ValueError):
    """The payload cannot be ingested (no order id)."""


class OrderEditError(ValueError):
    """The requested change is not allowed for the order's current state."""


class OrderSource(Protocol):
    """Anything that can list recent platform orders (the Shopify client)."""

    async def get_orders(self, limit: int = 50, status: str = "any") -> list[dict[str, Any]]: ...


@dataclass(slots=True)
class IngestResult:
    """Outcome of ingesting one payload."""

    order: Order
    created: bool
    assigned: bool


class OrderIngestionService:
    """Normalize, persist and route incoming platform orders."""

    def __init__(self, repository: OrderRepository, normalizer: OrderNormalizer) -> None:
        self.repository = repository
        self.normalizer = normalizer

    async def ingest(
        self,
        payload: Mapping[str, Any],
        *,
        received_at: datetime | None = None,
        assign: bool = True,
    ) -> IngestResult:
        """Upsert one platform order and auto-assign a partner if it has none.

        Re-ingesting a known order refreshes its source-derived fields only;
        status, partner and audit trail are kept.

        Raises:
            InvalidOrderPayloadError: If the payload carries no order id.
        """
        canonical = self.normalizer.normalize(payload, received_at=received_at)
        if not canonical.source_platform or not canonical.source_order_id:
            raise InvalidOrderPayloadError("Order payload has no id")

        existing = await self.repository.find_by_source_id(
            canonical.source_platform, canonical.source_order_id
        )
        order = await self.repository.upsert_order(canonical)
        created = existing is None

        assigned = False
        if assign and order.partner_id is None and order.status == OrderStatus.NEW:
            partner = await self._resolve_partner(order)
            if partner is not None:
                await self.repository.set_partner(order, partner)
                assigned = True

        logger.info(
            "Ingested order %s (created=%s, zone=%s, assigned=%s)",
            canonical.source_order_id,
            created,
            order.zone,
            assigned,
        )
        return IngestResult(order=order, created=created, assigned=assigned)

    async def handle_webhook(
        self, topic: str, payload: Mapping[str, Any]
    ) -> IngestResult | None:
        """Apply one order webhook. Unknown topics are logged and ignored."""
        try:
            webhook_topic = WebhookTopic(topic)
        except ValueError:
            logger.info("Ignoring unhandled webhook topic %r", topic)
            return None

        if webhook_topic in (WebhookTopic.ORDERS_CREATE, WebhookTopic.ORDERS_PAID):
            return await self.ingest(payload)

        if webhook_topic is WebhookTopic.ORDERS_UPDATED:
            result = await self.ingest(payload)
            await self._apply_fulfillment(result.order, payload)
            return result

        # orders/cancelled: record the order even if we never saw it, then cancel
        result = await self.ingest(payload, assign=False)
        if result.order.status != OrderStatus.CANCELLED:
            await self.repository.cancel_order(
                result.order,
                SHOPIFY_ACTOR,
                reason=as_text(payload.get("cancel_reason")),
                at=parse_timestamp(payload.get("cancelled_at")),
            )
            logger.info("Cancelled order %s from Shopify", result.order.source_order_id)
        return result

    async def sync(self, client: OrderSource, limit: int = 50) -> SyncResponse:
        """Poll recent orders and ingest each one.

        A failing order is logged and counted; it never aborts the batch.
        """
        payloads = await client.get_orders(limit=limit, status="any")
        result = SyncResponse(fetched=len(payloads))

        for payload in payloads:
            try:
                async with self.repository.savepoint():
                    outcome = await self.ingest(payload)
            except Exception:
                logger.exception(
                    "Failed to ingest order %s during sync", as_mapping(payload).get("id")
                )
                result.failed += 1
                continue

            if outcome.created:
                result.created += 1
            else:
                result.updated += 1
            if outcome.assigned:
                result.assigned += 1

        logger.info(
            "Order sync finished: fetched=%d created=%d updated=%d assigned=%d failed=%d",
            result.fetched,
            result.created,
            result.updated,
            result.assigned,
            result.failed,
        )
        return result

    async def backfill_delivery_dates(
        self, extractor: DeliveryDateExtractor | None = None
    ) -> int:
        """Recompute delivery date and option from stored payloads.

        Orders edited in the portal are left alone. Returns the number of
        orders whose delivery date changed.
        """
        extractor = extractor or self.normalizer.delivery_extractor
        scanned = 0
        updated = 0
        async for order in self.repository.iter_orders_with_raw():
            scanned += 1
            if order.update_count:
                continue
            info = extract_delivery_from_stored(order.raw, order.order_date, extractor)
            if info.delivery_date is None or info.delivery_date == order.delivery_date:
                continue
            option = info.delivery_option or order.delivery_option
            await self.repository.set_delivery(order, info.delivery_date, option)
            updated += 1
            logger.info(
                "Backfilled delivery date for order %s -> %s",
                order.order_name or order.id,
                info.delivery_date.date().isoformat(),
            )

        logger.info("Delivery backfill done: scanned=%d updated=%d", scanned, updated)
        return updated

    async def _resolve_partner(self, order: Order) -> Partner | None:
        partners = await self.repository.list_partners()
        return resolve_partner(order.zone, order.postal_code, partners)

    async def _apply_fulfillment(self, order: Order, payload: Mapping[str, Any]) -> None:
        """Copy the latest fulfillment's tracking info and the fulfilled status."""
        fields: dict[str, Any] = {}

        fulfillments = as_list(payload.get("fulfillments"))
        if fulfillments:
            latest = as_mapping(fulfillments[-1])
            tracking_number = as_text(latest.get("tracking_number")).strip()
            tracking_urls = as_list(latest.get("tracking_urls"))
            first_url = tracking_urls[0] if tracking_urls else latest.get("tracking_url")
            tracking_url = as_text(first_url).strip()
            if tracking_number and tracking_number != order.tracking_number:
                fields["tracking_number"] = tracking_number
            if tracking_url and tracking_url != order.tracking_url:
                fields["tracking_url"] = tracking_url

        if payload.get("fulfillment_status") == FULFILLED and order.status not in (
            OrderStatus.FULFILLED,
            OrderStatus.CANCELLED,
        ):
            fields["status"] = OrderStatus.FULFILLED

        if fields:
            await self.repository.update_order(order, fields, SHOPIFY_ACTOR)


def build_manual_order(
    data: ManualOrderCreate,
    actor: Actor,
    zone_matcher: ZoneMatcher,
    *,
    tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> CanonicalOrder:
    """Canonical order for a phone or walk-in order entered in the portal.

    Without a delivery date the order is for today. The result is
    unassigned; partner selection happens on insert.
    """
    received_at = now or datetime.now(UTC)
    postal_code = data.postal_code.strip() or None

    if data.delivery_date is not None:
        delivery_date, delivery_option = data.delivery_date, DeliveryOption.DATE
    else:
        zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        delivery_date, delivery_option = today_in(zone, received_at), DeliveryOption.TODAY

    add_ons: list[AddOn] = []
    card_text = data.card_text.strip()
    if card_text:
        add_ons.append(
            AddOn(
                source=AddOnSource.NOTE.value,
                key="card_message",
                label="Card text",
                value=card_text,
                raw_key="card_text",
            )
        )

    return CanonicalOrder(
        received_at=received_at,
        order_date=received_at,
        delivery_date=delivery_date,
        delivery_option=delivery_option,
        line_items=data.line_items,
        add_ons=add_ons,
        add_ons_summary=summarize(add_ons),
        customer=Customer(
            name=data.recipient_name.strip(),
            phone=data.phone.strip(),
            email=data.email.strip(),
            message=data.notes.strip(),
        ),
        shipping_address=ShippingAddress(
            address1=data.address.strip() or None,
            postal_code=postal_code,
            city=data.city.strip() or None,
        ),
        zone=zone_matcher.match(postal_code),
        status=OrderStatus.NEW,
        created_by_role=actor.role,
    )


class OrderManagementService:
    """Portal workflows: manual orders, edits, status changes, assignment."""

    def __init__(
        self,
        repository: OrderRepository,
        zone_matcher: ZoneMatcher,
        tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    ) -> None:
        self.repository = repository
        self.zone_matcher = zone_matcher
        self.tz = tz

    async def create_manual_order(self, data: ManualOrderCreate, actor: Actor) -> Order:
        """Insert a manual order.

        A partner creating an order always fulfills it; an admin may name a
        partner, otherwise the order is routed by zone.
        """
        canonical = build_manual_order(data, actor, self.zone_matcher, tz=self.tz)
        requested = actor.partner_id if actor.role is ActorRole.PARTNER else data.partner_id
        partner: Partner | None
        if requested is not None:
            partner = await self.repository.get_partner(requested)
            if partner is None:
                raise OrderEditError("Partner not found")
        else:
            partners = await self.repository.list_partners()
            partner = resolve_partner(
                canonical.zone, canonical.shipping_address.postal_code, partners
            )

        order = await self.repository.insert_manual_order(canonical, actor)
        if partner is not None:
            await self.repository.set_partner(order, partner)
        logger.info("Created manual order %s (zone=%s)", order.order_number, order.zone)
        return order

    async def edit_order(self, order: Order, changes: Mapping[str, Any], actor: Actor) -> Order:
        """Apply portal edits; a new shipping address also re-resolves the zone."""
        if order.status == OrderStatus.CANCELLED:
            raise OrderEditError("Cannot edit cancelled order")

        fields: dict[str, Any] = {}
        for name, value in changes.items():
            if name in NESTED_FIELDS and value is None:
                continue
            if name == "shipping_address":
                address = ShippingAddress.model_validate(value)
                fields["shipping_address"] = address.model_dump(mode="json")
                fields["postal_code"] = address.postal_code
                fields["zone"] = self.zone_matcher.match(address.postal_code)
            elif name == "customer":
                fields["customer"] = Customer.model_validate(value).model_dump(mode="json")
            elif name == "line_items":
                fields["line_items"] = [
                    LineItem.model_validate(item).model_dump(mode="json") for item in value
                ]
            else:
                fields[name] = value
        if not fields:
            return order
        return await self.repository.update_order(order, fields, actor)

    async def change_status(self, order: Order, status: OrderStatus, actor: Actor) -> Order:
        """Set the status as requested; progression is not enforced."""
        if status == OrderStatus.CANCELLED:
            return await self.cancel(order, actor)
        return await self.repository.update_order(order, {"status": status}, actor)

    async def cancel(self, order: Order, actor: Actor, reason: str = "") -> Order:
        return await self.repository.cancel_order(order, actor, reason=reason)

    async def assign(self, order: Order, partner: Partner, actor: Actor) -> Order:
        """Manually assign a partner, overriding zone routing."""
        await self.repository.set_partner(order, partner)
        logger.info(
            "Order %s assigned to partner %s by %s", order.id, partner.id, actor.role.value
        )
        return order
