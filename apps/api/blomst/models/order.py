"""Order model: one canonical, persisted florist order."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from blomst.models.base import Base
from blomst.schemas.order import ActorRole, DeliveryOption, OrderStatus


def _actor_role_enum() -> Enum:
    return Enum(
        ActorRole,
        name="actor_role",
        values_callable=lambda x: [e.value for e in x],
    )


class Order(Base):
    """Persisted order.

    Orders pushed or polled from Shopify are keyed by
    ``(source_platform, source_order_id)``; manual orders have no source id and
    get a generated ``order_number`` instead. Nested records (line items,
    add-ons, customer, shipping address) are stored as JSONB in their
    canonical shape.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint(
            "source_platform", "source_order_id", name="uq_orders_source_order"
        ),
    )

    # Identity
    source_platform: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    source_order_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    source_order_number: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    order_name: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    order_number: Mapped[str | None] = mapped_column(
        String(16),
        unique=True,
        nullable=True,
    )

    # Timing
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    order_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    delivery_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    delivery_option: Mapped[DeliveryOption | None] = mapped_column(
        Enum(
            DeliveryOption,
            name="delivery_option",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )

    # Contents
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        default=list,
        nullable=False,
    )
    add_ons: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        default=list,
        nullable=False,
    )
    add_ons_summary: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    customer: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )
    shipping_address: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )

    # Routing
    postal_code: Mapped[str | None] = mapped_column(
        String(16),
        nullable=True,
    )
    zone: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    partner_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("partners.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=OrderStatus.NEW,
        nullable=False,
        index=True,
    )

    # Audit trail
    created_by_role: Mapped[ActorRole] = mapped_column(
        _actor_role_enum(),
        default=ActorRole.SHOPIFY,
        nullable=False,
    )
    created_by_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    updated_by_role: Mapped[ActorRole | None] = mapped_column(
        _actor_role_enum(),
        nullable=True,
    )
    updated_by_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    update_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    last_updated_fields: Mapped[list[str]] = mapped_column(
        ARRAY(String),
        default=list,
        nullable=False,
    )

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_by_role: Mapped[ActorRole | None] = mapped_column(
        _actor_role_enum(),
        nullable=True,
    )
    cancelled_by_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Fulfillment tracking
    tracking_number: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    tracking_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Source payload, kept for re-extraction
    raw: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB(none_as_null=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        label = self.order_name or self.order_number or self.source_order_id
        return f"<Order {label} ({self.status.value})>"
