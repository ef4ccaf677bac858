"""Canonical order schemas produced by the ingestion pipeline."""

import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from blomst.schemas.common import BaseSchema


class OrderStatus(str, enum.Enum):
    """Fulfillment status. Forward progression is expected, not enforced."""

    NEW = "new"
    ASSIGNED = "assigned"
    IN_PRODUCTION = "in_production"
    READY = "ready"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class DeliveryOption(str, enum.Enum):
    """How the delivery date was chosen by the customer."""

    TODAY = "TODAY"
    TOMORROW = "TOMORROW"
    DATE = "DATE"


class ActorRole(str, enum.Enum):
    """Who created or last touched an order."""

    ADMIN = "admin"
    PARTNER = "partner"
    SHOPIFY = "shopify"


class AddOn(BaseSchema):
    """A customer-selected extra (card, ribbon, vase, ...)."""

    source: str
    key: str
    label: str
    value: str
    quantity: int = Field(default=1, ge=1)
    price: str | None = None
    currency: str | None = None
    line_item_title: str | None = None
    sku: str | None = None
    raw_key: str | None = None


class LineItem(BaseSchema):
    """A product line as shown to the florist."""

    sku: str = ""
    name: str = ""
    quantity: int = Field(default=1, ge=1)
    notes: str = ""


class Customer(BaseSchema):
    """Customer contact details and the free-text message."""

    name: str = ""
    phone: str = ""
    email: str = ""
    message: str = ""


class ShippingAddress(BaseSchema):
    """Delivery address."""

    address1: str | None = None
    address2: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str | None = None


class CanonicalOrder(BaseSchema):
    """Normalized order record, identical for webhook and polled sources."""

    source_platform: str | None = None
    source_order_id: str | None = None
    source_order_number: str | None = None
    order_name: str | None = None
    # Internal number, generated only for orders without a source id
    order_number: str | None = None

    received_at: datetime
    order_date: datetime | None = None
    delivery_date: datetime | None = None
    delivery_option: DeliveryOption | None = None

    line_items: list[LineItem] = Field(default_factory=list)
    add_ons: list[AddOn] = Field(default_factory=list)
    add_ons_summary: str | None = None

    customer: Customer = Field(default_factory=Customer)
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)

    zone: str | None = None
    partner_id: UUID | None = None
    status: OrderStatus = OrderStatus.NEW
    created_by_role: ActorRole = ActorRole.SHOPIFY

    raw: dict[str, Any] | None = None


class OrderResponse(CanonicalOrder):
    """Persisted order as returned to the portal."""

    id: UUID
    # Source payload stays server-side
    raw: dict[str, Any] | None = Field(default=None, exclude=True)
    assigned_at: datetime | None = None
    created_by_email: str | None = None
    updated_by_role: ActorRole | None = None
    updated_by_email: str | None = None
    update_count: int = 0
    last_updated_fields: list[str] = Field(default_factory=list)
    cancelled_at: datetime | None = None
    cancelled_by_role: ActorRole | None = None
    cancelled_by_email: str | None = None
    cancel_reason: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    created_at: datetime
    updated_at: datetime


class Actor(BaseSchema):
    """The role and identity behind a change, recorded in the audit trail."""

    role: ActorRole
    email: str | None = None
    partner_id: UUID | None = None


SHOPIFY_ACTOR = Actor(role=ActorRole.SHOPIFY)


class ManualOrderCreate(BaseSchema):
    """Phone or walk-in order entered in the portal."""

    delivery_date: datetime | None = None
    recipient_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    postal_code: str = ""
    city: str = ""
    card_text: str = ""
    notes: str = ""
    line_items: list[LineItem] = Field(default_factory=list)
    partner_id: UUID | None = None


class OrderUpdate(BaseSchema):
    """Editable order fields; only fields that are set are applied."""

    delivery_date: datetime | None = None
    delivery_option: DeliveryOption | None = None
    customer: Customer | None = None
    shipping_address: ShippingAddress | None = None
    line_items: list[LineItem] | None = None
    add_ons_summary: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None


class StatusUpdate(BaseSchema):
    """Status change request."""

    status: OrderStatus


class CancelRequest(BaseSchema):
    """Cancellation request."""

    reason: str = ""


class AssignRequest(BaseSchema):
    """Manual partner assignment."""

    partner_id: UUID


class SyncResponse(BaseSchema):
    """Result of a Shopify order poll."""

    fetched: int = 0
    created: int = 0
    updated: int = 0
    assigned: int = 0
    failed: int = 0
