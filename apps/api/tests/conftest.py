"""Pytest configuration and fixtures for the Blomst API test suite.

Provides:
- An in-memory order repository, so no test needs a database
- Mock portal authentication (admin and partner actors)
- Shopify test settings and webhook signing
- Sample Shopify order payloads and a fixed-clock normalizer
- Model factories for partners and ingested orders
"""

import base64
import copy
import hashlib
import hmac
import itertools
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Generator, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from blomst.core.auth import get_current_actor
from blomst.core.deps import get_db, get_management_service, get_order_repository
from blomst.main import app
from blomst.models.order import Order
from blomst.models.partner import Partner
from blomst.schemas.order import Actor, ActorRole, CanonicalOrder, OrderStatus
from blomst.services.ingestion import (
    AddOnExtractor,
    DeliveryDateExtractor,
    OrderNormalizer,
    ZoneConfig,
    ZoneMatcher,
    generate_order_number,
)
from blomst.services.order_filters import DateWindow
from blomst.services.order_repository import (
    ALWAYS_REFRESHED,
    LIST_LIMIT,
    REFRESHED_UNTIL_EDITED,
    OrderRepository,
    order_values,
)
from blomst.services.order_service import OrderIngestionService, OrderManagementService

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Friday 2025-03-14, 10:30 in Copenhagen
FIXED_NOW = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)

ADMIN_EMAIL = "admin@blomst.dk"
PARTNER_EMAIL = "florist@example.com"

SHOPIFY_TEST_SHOP = "test-florist.myshopify.com"
SHOPIFY_TEST_ACCESS_TOKEN = "shpat_test_token"
SHOPIFY_TEST_WEBHOOK_SECRET = "test-shopify-webhook-secret"

TEST_ZONES = (
    ("1000-2999", "København"),
    ("4600", "Køge"),
    ("8000-8999", "Aarhus"),
)


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------


class InMemoryOrderRepository(OrderRepository):
    """OrderRepository backed by dicts.

    Queries are reimplemented in Python; the mutation helpers (partner
    assignment, edits, cancellation, audit trail) are inherited unchanged and
    flush into a mock session.
    """

    def __init__(self) -> None:
        super().__init__(AsyncMock())
        self.orders: dict[UUID, Order] = {}
        self.partners: dict[UUID, Partner] = {}
        self.commits = 0
        self._ticks = itertools.count()

    def _timestamp(self) -> datetime:
        # Strictly increasing, so creation order is stable
        return FIXED_NOW + timedelta(microseconds=next(self._ticks))

    async def commit(self) -> None:
        self.commits += 1

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:  # type: ignore[override]
        yield

    # Orders

    def _new_order(self, values: Mapping[str, Any]) -> Order:
        now = self._timestamp()
        order = Order(
            **values,
            id=uuid4(),
            update_count=0,
            last_updated_fields=[],
            created_at=now,
            updated_at=now,
        )
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id: UUID) -> Order | None:
        return self.orders.get(order_id)

    async def find_by_source_id(self, platform: str, source_order_id: str) -> Order | None:
        for order in self.orders.values():
            if order.source_platform == platform and order.source_order_id == source_order_id:
                return order
        return None

    async def list_orders(
        self,
        *,
        delivery: DateWindow | None = None,
        received: DateWindow | None = None,
        status: OrderStatus | None = None,
        zone: str | None = None,
        postal_code: str | None = None,
        partner_id: UUID | None = None,
        limit: int = LIST_LIMIT,
    ) -> list[Order]:
        def within(value: datetime | None, window: DateWindow | None) -> bool:
            if window is None:
                return True
            if value is None:
                return False
            start, end = window
            return (start is None or value >= start) and (end is None or value < end)

        matches = [
            order
            for order in self.orders.values()
            if within(order.delivery_date, delivery)
            and within(order.received_at, received)
            and (status is None or order.status == status)
            and (zone is None or order.zone == zone)
            and (postal_code is None or order.postal_code == postal_code)
            and (partner_id is None or order.partner_id == partner_id)
        ]
        matches.sort(
            key=lambda o: (
                o.delivery_date is None,
                o.delivery_date or o.received_at,
                o.received_at,
            )
        )
        return matches[:limit]

    async def upsert_order(self, order: CanonicalOrder) -> Order:
        if not order.source_platform or not order.source_order_id:
            raise ValueError("upsert_order requires a source platform and order id")
        values = order_values(order)
        existing = await self.find_by_source_id(order.source_platform, order.source_order_id)
        if existing is None:
            return self._new_order(values)

        for name in ALWAYS_REFRESHED:
            setattr(existing, name, values[name])
        if existing.update_count == 0:
            for name in REFRESHED_UNTIL_EDITED:
                setattr(existing, name, values[name])
        existing.updated_at = self._timestamp()
        return existing

    async def insert_manual_order(self, order: CanonicalOrder, actor: Actor) -> Order:
        number = generate_order_number()
        values = order_values(order)
        values["order_number"] = number
        values["source_order_number"] = values["source_order_number"] or number
        values["order_name"] = values["order_name"] or f"#{number}"
        created = self._new_order(values)
        created.created_by_email = actor.email
        return created

    async def iter_orders_with_raw(self, batch_size: int = 200) -> AsyncIterator[Order]:
        for order in sorted(self.orders.values(), key=lambda o: o.id):
            if order.raw is not None:
                yield order

    # Partners

    async def list_partners(self) -> list[Partner]:
        return sorted(self.partners.values(), key=lambda p: (p.created_at, p.id))

    async def get_partner(self, partner_id: UUID) -> Partner | None:
        return self.partners.get(partner_id)

    async def create_partner(self, fields: Mapping[str, Any]) -> Partner:
        now = self._timestamp()
        partner = Partner(
            **{"zone_ranges": [], **fields},
            id=uuid4(),
            created_at=now,
            updated_at=now,
        )
        self.partners[partner.id] = partner
        return partner

    async def unassign_partner_orders(self, partner_id: UUID) -> int:
        count = 0
        for order in self.orders.values():
            if order.partner_id == partner_id:
                await self.set_partner(order, None)
                count += 1
        return count

    async def delete_partner(self, partner: Partner) -> int:
        unassigned = await self.unassign_partner_orders(partner.id)
        del self.partners[partner.id]
        return unassigned


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------


_SAMPLE_ORDER: dict[str, Any] = {
    "id": 820982911946154508,
    "name": "#1001",
    "order_number": 1001,
    "email": "kunde@example.com",
    "created_at": "2025-03-13T18:05:00+01:00",
    "currency": "DKK",
    "note": "",
    "note_attributes": [{"name": "Leveringsdato", "value": "2025-03-15"}],
    "line_items": [
        {
            "id": 1,
            "title": "Buket Forår",
            "sku": "BUK-01",
            "quantity": 1,
            "price": "399.00",
            "properties": [{"name": "Korttekst", "value": "Tillykke med dagen"}],
        },
        {
            "id": 2,
            "title": "Chokolade",
            "variant_title": "Lille",
            "sku": "ADDON_CHOC",
            "quantity": 2,
            "price": "49.00",
        },
    ],
    "shipping_address": {
        "first_name": "Mette",
        "last_name": "Hansen",
        "address1": "Nørrebrogade 10",
        "zip": "2200",
        "city": "København N",
        "country": "Denmark",
        "phone": "+45 11 22 33 44",
    },
    "customer": {"first_name": "Lars", "last_name": "Hansen", "email": "kunde@example.com"},
}


def make_shopify_order(**overrides: Any) -> dict[str, Any]:
    """Return a fresh Shopify REST order payload with top-level overrides applied."""
    order = copy.deepcopy(_SAMPLE_ORDER)
    order.update(overrides)
    return order


@pytest.fixture
def sample_shopify_order() -> dict[str, Any]:
    """A Shopify order delivered to 2200 on 2025-03-15 with a card and chocolate."""
    return make_shopify_order()


# ---------------------------------------------------------------------------
# Shopify settings and webhook signing
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def set_shopify_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure test Shopify credentials.

    This is autouse=True so all tests have consistent Shopify config.
    """
    monkeypatch.setattr("blomst.core.config.settings.shopify_shop_domain", SHOPIFY_TEST_SHOP)
    monkeypatch.setattr(
        "blomst.core.config.settings.shopify_access_token", SHOPIFY_TEST_ACCESS_TOKEN
    )
    monkeypatch.setattr(
        "blomst.core.config.settings.shopify_webhook_secret", SHOPIFY_TEST_WEBHOOK_SECRET
    )


def sign_webhook(body: bytes, secret: str = SHOPIFY_TEST_WEBHOOK_SECRET) -> str:
    """Compute the X-Shopify-Hmac-Sha256 header for ``body``."""
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


@pytest.fixture
def mock_shopify_http() -> Generator[MagicMock, None, None]:
    """Mock httpx.AsyncClient for ShopifyClient unit tests.

    Every GET returns the same single-page response; tests set its JSON.
    """
    with patch("blomst.integrations.shopify.client.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client

        mock_get_response = MagicMock()
        mock_get_response.status_code = 200
        mock_get_response.json.return_value = {"orders": []}
        mock_get_response.headers = {}
        mock_get_response.raise_for_status = MagicMock()
        mock_client.get.return_value = mock_get_response

        yield mock_client


# ---------------------------------------------------------------------------
# Ingestion pipeline
# ---------------------------------------------------------------------------


@pytest.fixture
def zone_config() -> ZoneConfig:
    return ZoneConfig.from_pairs(TEST_ZONES)


@pytest.fixture
def zone_matcher(zone_config: ZoneConfig) -> ZoneMatcher:
    return ZoneMatcher(zone_config)


@pytest.fixture
def normalizer(zone_matcher: ZoneMatcher) -> OrderNormalizer:
    """Normalizer whose "today" is FIXED_NOW."""
    return OrderNormalizer(
        zone_matcher=zone_matcher,
        delivery_extractor=DeliveryDateExtractor(clock=lambda: FIXED_NOW),
        addon_extractor=AddOnExtractor("DKK"),
    )


@pytest.fixture
def repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def ingestion_service(
    repository: InMemoryOrderRepository, normalizer: OrderNormalizer
) -> OrderIngestionService:
    return OrderIngestionService(repository, normalizer)


@pytest.fixture
def management_service(
    repository: InMemoryOrderRepository, zone_matcher: ZoneMatcher
) -> OrderManagementService:
    return OrderManagementService(repository, zone_matcher)


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def partner_factory(repository: InMemoryOrderRepository) -> Callable[..., Any]:
    """Factory that adds partners to the roster, in call order."""

    async def _create(
        *,
        name: str = "Test Florist",
        zone_ranges: list[str] | None = None,
        email: str | None = PARTNER_EMAIL,
    ) -> Partner:
        return await repository.create_partner(
            {"name": name, "email": email, "zone_ranges": zone_ranges or []}
        )

    return _create


@pytest.fixture
def order_factory(
    repository: InMemoryOrderRepository, normalizer: OrderNormalizer
) -> Callable[..., Any]:
    """Factory that ingests a Shopify payload straight into the repository."""

    async def _create(
        *,
        partner: Partner | None = None,
        status: OrderStatus | None = None,
        received_at: datetime = FIXED_NOW,
        **overrides: Any,
    ) -> Order:
        payload = make_shopify_order(**overrides)
        if "id" not in overrides:
            payload["id"] = next(_order_ids)
        order = await repository.upsert_order(
            normalizer.normalize(payload, received_at=received_at)
        )
        if partner is not None:
            await repository.set_partner(order, partner)
        if status is not None:
            order.status = status
        return order

    return _create


_order_ids = itertools.count(5_000_000_000_000)


@pytest_asyncio.fixture
async def partner(partner_factory: Callable[..., Any]) -> Partner:
    """A partner covering Copenhagen 2000-2999."""
    created: Partner = await partner_factory(name="Blomsterhuset", zone_ranges=["2000-2999"])
    return created


# ---------------------------------------------------------------------------
# Auth mock
# ---------------------------------------------------------------------------


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(role=ActorRole.ADMIN, email=ADMIN_EMAIL)


@pytest.fixture
def partner_actor(partner: Partner) -> Actor:
    return Actor(role=ActorRole.PARTNER, email=PARTNER_EMAIL, partner_id=partner.id)


@pytest.fixture
def actor(admin_actor: Actor) -> Actor:
    """The actor the ``client`` fixture authenticates as; override per test class."""
    return admin_actor


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


def _override_repository_dependencies(
    repository: InMemoryOrderRepository, zone_matcher: ZoneMatcher
) -> None:
    async def _override_db() -> AsyncGenerator[AsyncMock, None]:
        yield AsyncMock()

    def _override_repository() -> OrderRepository:
        return repository

    def _override_management() -> OrderManagementService:
        return OrderManagementService(repository, zone_matcher)

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_order_repository] = _override_repository
    app.dependency_overrides[get_management_service] = _override_management


@pytest_asyncio.fixture
async def client(
    actor: Actor,
    repository: InMemoryOrderRepository,
    zone_matcher: ZoneMatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated async test client backed by the in-memory repository."""

    async def _override_actor() -> Actor:
        return actor

    _override_repository_dependencies(repository, zone_matcher)
    app.dependency_overrides[get_current_actor] = _override_actor

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def unauthed_client(
    repository: InMemoryOrderRepository,
    zone_matcher: ZoneMatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client. Auth is NOT overridden."""
    _override_repository_dependencies(repository, zone_matcher)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
