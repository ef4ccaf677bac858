"""Tests for order ingestion and portal workflows."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from blomst.models.partner import Partner
from blomst.schemas.order import (
    Actor,
    ActorRole,
    ManualOrderCreate,
    OrderStatus,
    SyncResponse,
)
from blomst.services.ingestion import ZoneMatcher
from blomst.services.order_service import (
    InvalidOrderPayloadError,
    OrderEditError,
    OrderIngestionService,
    OrderManagementService,
    build_manual_order,
)
from tests.conftest import FIXED_NOW, InMemoryOrderRepository, make_shopify_order

# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class TestIngest:
    """Tests for OrderIngestionService.ingest()."""

    async def test_creates_and_assigns(
        self,
        ingestion_service: OrderIngestionService,
        repository: InMemoryOrderRepository,
        partner: Partner,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        result = await ingestion_service.ingest(sample_shopify_order, received_at=FIXED_NOW)

        assert result.created is True
        assert result.assigned is True
        assert result.order.partner_id == partner.id
        assert result.order.status == OrderStatus.ASSIGNED
        assert result.order.assigned_at is not None
        assert result.order.zone == "København"
        assert len(repository.orders) == 1

    async def test_without_covering_partner_stays_new(
        self,
        ingestion_service: OrderIngestionService,
        partner_factory: Callable[..., Any],
    ) -> None:
        await partner_factory(name="Aarhus Blomster", zone_ranges=["8000-8999"])

        result = await ingestion_service.ingest(make_shopify_order(), received_at=FIXED_NOW)

        assert result.assigned is False
        assert result.order.partner_id is None
        assert result.order.status == OrderStatus.NEW

    async def test_first_partner_in_roster_wins(
        self,
        ingestion_service: OrderIngestionService,
        partner_factory: Callable[..., Any],
    ) -> None:
        first = await partner_factory(name="A", zone_ranges=["1000-2999"])
        await partner_factory(name="B", zone_ranges=["2200"])

        result = await ingestion_service.ingest(make_shopify_order(), received_at=FIXED_NOW)

        assert result.order.partner_id == first.id

    async def test_reingest_is_idempotent(
        self,
        ingestion_service: OrderIngestionService,
        repository: InMemoryOrderRepository,
        partner: Partner,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        first = await ingestion_service.ingest(sample_shopify_order, received_at=FIXED_NOW)
        second = await ingestion_service.ingest(sample_shopify_order, received_at=FIXED_NOW)

        assert second.created is False
        assert second.assigned is False
        assert second.order.id == first.order.id
        assert second.order.partner_id == partner.id
        assert len(repository.orders) == 1

    async def test_reingest_keeps_status_and_refreshes_payload(
        self,
        ingestion_service: OrderIngestionService,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        first = await ingestion_service.ingest(sample_shopify_order, received_at=FIXED_NOW)
        first.order.status = OrderStatus.IN_PRODUCTION

        updated = make_shopify_order(
            id=sample_shopify_order["id"],
            note_attributes=[{"name": "Leveringsdato", "value": "2025-03-16"}],
        )
        second = await ingestion_service.ingest(updated, received_at=FIXED_NOW)

        assert second.order.status == OrderStatus.IN_PRODUCTION
        assert second.order.delivery_date == datetime(2025, 3, 16, 12, tzinfo=UTC)
        assert second.order.raw == updated

    async def test_portal_edit_freezes_delivery_date(
        self,
        ingestion_service: OrderIngestionService,
        repository: InMemoryOrderRepository,
        admin_actor: Actor,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        """Re-ingesting an edited order must not undo the florist's changes."""
        result = await ingestion_service.ingest(sample_shopify_order, received_at=FIXED_NOW)
        edited_date = datetime(2025, 3, 20, 12, tzinfo=UTC)
        await repository.update_order(result.order, {"delivery_date": edited_date}, admin_actor)

        changed = make_shopify_order(
            id=sample_shopify_order["id"],
            name="#1001-B",
            note_attributes=[{"name": "Leveringsdato", "value": "2025-03-16"}],
        )
        again = await ingestion_service.ingest(changed, received_at=FIXED_NOW)

        assert again.order.delivery_date == edited_date
        assert again.order.order_name == "#1001-B"

    async def test_missing_id_is_rejected(
        self, ingestion_service: OrderIngestionService
    ) -> None:
        payload = make_shopify_order()
        del payload["id"]

        with pytest.raises(InvalidOrderPayloadError):
            await ingestion_service.ingest(payload)


class TestHandleWebhook:
    """Tests for OrderIngestionService.handle_webhook()."""

    async def test_unknown_topic_is_ignored(
        self,
        ingestion_service: OrderIngestionService,
        repository: InMemoryOrderRepository,
    ) -> None:
        assert await ingestion_service.handle_webhook("products/create", {"id": 1}) is None
        assert repository.orders == {}

    @pytest.mark.parametrize("topic", ["orders/create", "orders/paid"])
    async def test_create_topics_ingest(
        self,
        ingestion_service: OrderIngestionService,
        partner: Partner,
        topic: str,
    ) -> None:
        result = await ingestion_service.handle_webhook(topic, make_shopify_order())

        assert result is not None
        assert result.created is True
        assert result.order.partner_id == partner.id

    async def test_updated_copies_tracking_and_fulfillment(
        self,
        ingestion_service: OrderIngestionService,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        await ingestion_service.ingest(sample_shopify_order)
        payload = make_shopify_order(
            id=sample_shopify_order["id"],
            fulfillment_status="fulfilled",
            fulfillments=[
                {"tracking_number": "OLD", "tracking_urls": []},
                {
                    "tracking_number": "GLS123",
                    "tracking_urls": ["https://gls.dk/track/GLS123"],
                },
            ],
        )

        result = await ingestion_service.handle_webhook("orders/updated", payload)

        assert result is not None
        order = result.order
        assert order.status == OrderStatus.FULFILLED
        assert order.tracking_number == "GLS123"
        assert order.tracking_url == "https://gls.dk/track/GLS123"
        # Shopify changes are not portal edits
        assert order.update_count == 0

    async def test_updated_does_not_revive_cancelled_order(
        self,
        ingestion_service: OrderIngestionService,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        result = await ingestion_service.ingest(sample_shopify_order)
        result.order.status = OrderStatus.CANCELLED

        payload = make_shopify_order(id=sample_shopify_order["id"], fulfillment_status="fulfilled")
        updated = await ingestion_service.handle_webhook("orders/updated", payload)

        assert updated is not None
        assert updated.order.status == OrderStatus.CANCELLED

    async def test_cancelled_known_order(
        self,
        ingestion_service: OrderIngestionService,
        partner: Partner,
        sample_shopify_order: dict[str, Any],
    ) -> None:
        await ingestion_service.ingest(sample_shopify_order)
        payload = make_shopify_order(
            id=sample_shopify_order["id"],
            cancel_reason="customer",
            cancelled_at="2025-03-14T08:00:00Z",
        )

        result = await ingestion_service.handle_webhook("orders/cancelled", payload)

        assert result is not None
        order = result.order
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_by_role == ActorRole.SHOPIFY
        assert order.cancel_reason == "customer"
        assert order.cancelled_at == datetime(2025, 3, 14, 8, tzinfo=UTC)
        assert order.partner_id == partner.id

    async def test_cancelled_unknown_order_is_recorded_unassigned(
        self,
        ingestion_service: OrderIngestionService,
        repository: InMemoryOrderRepository,
        partner: Partner,
    ) -> None:
        result = await ingestion_service.handle_webhook("orders/cancelled", make_shopify_order())

        assert result is not None
        assert result.created is True
        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.partner_id is None
        assert len(repository.orders) == 1


class TestSync:
    """Tests for OrderIngestionService.sync()."""

    async def test_counts_and_isolates_failures(
        self,
        ingestion_service: OrderIngestionService,
        partner: Partner,
    ) -> None:
        existing = make_shopify_order(id=1)
        await ingestion_service.ingest(existing)
        broken = make_shopify_order()
        del broken["id"]
        client = AsyncMock()
        client.get_orders.return_value = [
            existing,
            make_shopify_order(id=2),
            broken,
            make_shopify_order(id=3, shipping_address={"zip": "9990"}),
        ]

        result = await ingestion_service.sync(client, limit=25)

        client.get_orders.assert_awaited_once_with(limit=25, status="any")
        assert result == SyncResponse(fetched=4, created=2, updated=1, assigned=1, failed=1)

    async def test_empty_poll(self, ingestion_service: OrderIngestionService) -> None:
        client = AsyncMock()
        client.get_orders.return_value = []

        assert await ingestion_service.sync(client) == SyncResponse()


class TestBackfillDeliveryDates:
    """Tests for OrderIngestionService.backfill_delivery_dates()."""

    async def test_recomputes_from_stored_payload(
        self,
        ingestion_service: OrderIngestionService,
        order_factory: Callable[..., Any],
    ) -> None:
        order = await order_factory()
        order.delivery_date = None
        order.delivery_option = None

        updated = await ingestion_service.backfill_delivery_dates()

        assert updated == 1
        assert order.delivery_date == datetime(2025, 3, 15, 12, tzinfo=UTC)
        assert order.delivery_option == "DATE"

    async def test_skips_unchanged_and_edited_orders(
        self,
        ingestion_service: OrderIngestionService,
        repository: InMemoryOrderRepository,
        order_factory: Callable[..., Any],
        admin_actor: Actor,
    ) -> None:
        await order_factory()
        edited = await order_factory()
        await repository.update_order(edited, {"delivery_date": None}, admin_actor)

        assert await ingestion_service.backfill_delivery_dates() == 0
        assert edited.delivery_date is None

    async def test_skips_orders_without_payload(
        self,
        ingestion_service: OrderIngestionService,
        order_factory: Callable[..., Any],
    ) -> None:
        order = await order_factory()
        order.raw = None
        order.delivery_date = None

        assert await ingestion_service.backfill_delivery_dates() == 0


# ---------------------------------------------------------------------------
# Portal workflows
# ---------------------------------------------------------------------------


class TestBuildManualOrder:
    """Tests for build_manual_order()."""

    def test_defaults_to_today(self, zone_matcher: ZoneMatcher, admin_actor: Actor) -> None:
        data = ManualOrderCreate(recipient_name=" Mette ", postal_code="2200", notes=" Ring ")

        order = build_manual_order(data, admin_actor, zone_matcher, now=FIXED_NOW)

        assert order.delivery_date == datetime(2025, 3, 14, 12, tzinfo=UTC)
        assert order.delivery_option == "TODAY"
        assert order.zone == "København"
        assert order.customer.name == "Mette"
        assert order.customer.message == "Ring"
        assert order.source_order_id is None
        assert order.created_by_role == ActorRole.ADMIN

    def test_card_text_becomes_add_on(self, zone_matcher: ZoneMatcher) -> None:
        partner_actor = Actor(role=ActorRole.PARTNER, partner_id=uuid4())
        data = ManualOrderCreate(
            delivery_date=datetime(2025, 3, 20, 12, tzinfo=UTC), card_text="Tillykke"
        )

        order = build_manual_order(data, partner_actor, zone_matcher, now=FIXED_NOW)

        assert order.delivery_option == "DATE"
        assert [(a.key, a.value) for a in order.add_ons] == [("card_message", "Tillykke")]
        assert order.add_ons_summary == "Card text: Tillykke"
        assert order.zone is None
        assert order.created_by_role == ActorRole.PARTNER


class TestOrderManagementService:
    """Tests for OrderManagementService."""

    async def test_manual_order_routed_by_zone(
        self,
        management_service: OrderManagementService,
        partner: Partner,
        admin_actor: Actor,
    ) -> None:
        order = await management_service.create_manual_order(
            ManualOrderCreate(recipient_name="Mette", postal_code="2200"), admin_actor
        )

        assert order.order_number is not None
        assert len(order.order_number) == 7
        assert order.order_name == f"#{order.order_number}"
        assert order.partner_id == partner.id
        assert order.status == OrderStatus.ASSIGNED
        assert order.created_by_email == admin_actor.email

    async def test_partner_manual_order_is_their_own(
        self,
        management_service: OrderManagementService,
        partner_actor: Actor,
        partner: Partner,
    ) -> None:
        order = await management_service.create_manual_order(
            ManualOrderCreate(recipient_name="Mette", postal_code="8000"), partner_actor
        )

        assert order.partner_id == partner.id
        assert order.created_by_role == ActorRole.PARTNER

    async def test_admin_names_unknown_partner(
        self, management_service: OrderManagementService, admin_actor: Actor
    ) -> None:
        with pytest.raises(OrderEditError, match="Partner not found"):
            await management_service.create_manual_order(
                ManualOrderCreate(partner_id=uuid4()), admin_actor
            )

    async def test_edit_shipping_address_recomputes_zone(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        admin_actor: Actor,
    ) -> None:
        order = await order_factory()

        edited = await management_service.edit_order(
            order,
            {"shipping_address": {"address1": "Torvet 1", "postal_code": "4600", "city": "Køge"}},
            admin_actor,
        )

        assert edited.zone == "Køge"
        assert edited.postal_code == "4600"
        assert edited.shipping_address["city"] == "Køge"
        assert edited.update_count == 1
        assert edited.updated_by_role == ActorRole.ADMIN
        assert edited.updated_by_email == admin_actor.email
        assert edited.last_updated_fields == ["shipping_address", "postal_code", "zone"]

    async def test_edit_ignores_cleared_nested_fields(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        admin_actor: Actor,
    ) -> None:
        order = await order_factory()

        edited = await management_service.edit_order(order, {"customer": None}, admin_actor)

        assert edited.customer["name"] == "Mette Hansen"
        assert edited.update_count == 0

    async def test_cancelled_order_cannot_be_edited(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        admin_actor: Actor,
    ) -> None:
        order = await order_factory(status=OrderStatus.CANCELLED)

        with pytest.raises(OrderEditError):
            await management_service.edit_order(order, {"tracking_number": "X"}, admin_actor)

    async def test_change_status(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        partner_actor: Actor,
    ) -> None:
        order = await order_factory()

        await management_service.change_status(order, OrderStatus.READY, partner_actor)

        assert order.status == OrderStatus.READY
        assert order.updated_by_role == ActorRole.PARTNER
        assert order.last_updated_fields == ["status"]

    async def test_change_status_to_cancelled_records_cancellation(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        admin_actor: Actor,
    ) -> None:
        order = await order_factory()

        await management_service.change_status(order, OrderStatus.CANCELLED, admin_actor)

        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_by_role == ActorRole.ADMIN
        assert order.cancelled_by_email == admin_actor.email
        assert order.cancelled_at is not None

    async def test_cancel_with_reason(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        admin_actor: Actor,
    ) -> None:
        order = await order_factory()

        await management_service.cancel(order, admin_actor, reason="  Kunden fortrød ")

        assert order.cancel_reason == "Kunden fortrød"

    async def test_assign_overrides_routing(
        self,
        management_service: OrderManagementService,
        order_factory: Callable[..., Any],
        partner_factory: Callable[..., Any],
        partner: Partner,
        admin_actor: Actor,
    ) -> None:
        order = await order_factory(partner=partner)
        other = await partner_factory(name="Aarhus Blomster", zone_ranges=["8000-8999"])

        await management_service.assign(order, other, admin_actor)

        assert order.partner_id == other.id
        assert order.status == OrderStatus.ASSIGNED
