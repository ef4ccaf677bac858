"""Order and partner persistence on top of an async SQLAlchemy session."""

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, literal, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blomst.models.order import Order
from blomst.models.partner import Partner
from blomst.schemas.order import (
    Actor,
    ActorRole,
    CanonicalOrder,
    DeliveryOption,
    OrderStatus,
)
from blomst.services.ingestion.normalizer import generate_order_number
from blomst.services.order_filters import DateWindow

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 20
LIST_LIMIT = 200

# Refreshed on every re-ingestion of a known source order
ALWAYS_REFRESHED = (
    "source_order_number",
    "order_name",
    "order_date",
    "raw",
)

# Refreshed on re-ingestion until the order is edited in the portal
REFRESHED_UNTIL_EDITED = (
    "delivery_date",
    "delivery_option",
    "line_items",
    "add_ons",
    "add_ons_summary",
    "customer",
    "shipping_address",
    "postal_code",
    "zone",
)


class OrderNumberExhaustedError(RuntimeError):
    """No free internal order number was found."""


def order_values(order: CanonicalOrder) -> dict[str, Any]:
    """Flatten a canonical order into ``orders`` column values."""
    return {
        "source_platform": order.source_platform,
        "source_order_id": order.source_order_id,
        "source_order_number": order.source_order_number,
        "order_name": order.order_name,
        "order_number": order.order_number,
        "received_at": order.received_at,
        "order_date": order.order_date,
        "delivery_date": order.delivery_date,
        "delivery_option": order.delivery_option,
        "line_items": [item.model_dump(mode="json") for item in order.line_items],
        "add_ons": [add_on.model_dump(mode="json") for add_on in order.add_ons],
        "add_ons_summary": order.add_ons_summary,
        "customer": order.customer.model_dump(mode="json"),
        "shipping_address": order.shipping_address.model_dump(mode="json"),
        "postal_code": order.shipping_address.postal_code,
        "zone": order.zone,
        "partner_id": order.partner_id,
        "status": order.status,
        "created_by_role": order.created_by_role,
        "raw": order.raw,
    }


class OrderRepository:
    """Data access for orders and the partner roster."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def commit(self) -> None:
        await self.session.commit()

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Nested transaction, so one failed order does not poison a batch."""
        return self.session.begin_nested()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_order(self, order_id: UUID) -> Order | None:
        return await self.session.get(Order, order_id)

    async def find_by_source_id(self, platform: str, source_order_id: str) -> Order | None:
        stmt = select(Order).where(
            Order.source_platform == platform,
            Order.source_order_id == source_order_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

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
        """List orders by delivery date, then receipt time."""
        stmt = select(Order)
        if delivery is not None:
            start, end = delivery
            if start is not None:
                stmt = stmt.where(Order.delivery_date >= start)
            if end is not None:
                stmt = stmt.where(Order.delivery_date < end)
        if received is not None:
            start, end = received
            if start is not None:
                stmt = stmt.where(Order.received_at >= start)
            if end is not None:
                stmt = stmt.where(Order.received_at < end)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        if zone is not None:
            stmt = stmt.where(Order.zone == zone)
        if postal_code is not None:
            stmt = stmt.where(Order.postal_code == postal_code)
        if partner_id is not None:
            stmt = stmt.where(Order.partner_id == partner_id)

        stmt = stmt.order_by(
            Order.delivery_date.asc().nulls_last(),
            Order.received_at.asc(),
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_order(self, order: CanonicalOrder) -> Order:
        """Insert a source order, or refresh the source-derived columns of a known one.

        Status, partner, internal order number and the audit trail are never
        touched by re-ingestion.
        """
        if not order.source_platform or not order.source_order_id:
            raise ValueError("upsert_order requires a source platform and order id")

        table = Order.__table__
        stmt = pg_insert(Order).values(**order_values(order))
        unedited = table.c.update_count == 0
        set_: dict[str, Any] = {name: stmt.excluded[name] for name in ALWAYS_REFRESHED}
        set_.update(
            {
                name: case((unedited, stmt.excluded[name]), else_=table.c[name])
                for name in REFRESHED_UNTIL_EDITED
            }
        )
        set_["updated_at"] = func.now()

        stmt = (
            stmt.on_conflict_do_update(
                index_elements=["source_platform", "source_order_id"],
                set_=set_,
            )
            .returning(Order)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def insert_manual_order(self, order: CanonicalOrder, actor: Actor) -> Order:
        """Insert an order without a source id under a fresh internal number."""
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            number = generate_order_number()
            values = order_values(order)
            values["order_number"] = number
            values["source_order_number"] = values["source_order_number"] or number
            values["order_name"] = values["order_name"] or f"#{number}"
            row = Order(**values, created_by_email=actor.email)
            try:
                async with self.session.begin_nested():
                    self.session.add(row)
            except IntegrityError:
                logger.warning("Order number collision on attempt %d", attempt)
                continue
            return row
        raise OrderNumberExhaustedError(
            f"No free order number after {ORDER_NUMBER_ATTEMPTS} attempts"
        )

    async def set_partner(
        self, order: Order, partner: Partner | None, at: datetime | None = None
    ) -> Order:
        """Assign (or clear) the fulfilling partner; new orders become assigned."""
        if partner is None:
            order.partner_id = None
            order.assigned_at = None
            if order.status == OrderStatus.ASSIGNED:
                order.status = OrderStatus.NEW
        else:
            order.partner_id = partner.id
            order.assigned_at = at or datetime.now(UTC)
            if order.status == OrderStatus.NEW:
                order.status = OrderStatus.ASSIGNED
        await self.session.flush()
        return order

    async def update_order(
        self, order: Order, fields: Mapping[str, Any], actor: Actor
    ) -> Order:
        """Apply edited fields and record who changed what."""
        for name, value in fields.items():
            setattr(order, name, value)
        self._record_update(order, actor, list(fields))
        await self.session.flush()
        return order

    async def cancel_order(
        self,
        order: Order,
        actor: Actor,
        reason: str = "",
        at: datetime | None = None,
    ) -> Order:
        """Mark an order cancelled with who, when and why."""
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = at or datetime.now(UTC)
        order.cancelled_by_role = actor.role
        order.cancelled_by_email = actor.email
        order.cancel_reason = reason.strip()
        self._record_update(order, actor, ["status"])
        await self.session.flush()
        return order

    async def set_delivery(
        self,
        order: Order,
        delivery_date: datetime | None,
        delivery_option: DeliveryOption | None,
    ) -> None:
        """Overwrite the extracted delivery fields without touching the audit trail."""
        order.delivery_date = delivery_date
        order.delivery_option = delivery_option
        await self.session.flush()

    async def iter_orders_with_raw(self, batch_size: int = 200) -> AsyncIterator[Order]:
        """Yield every order that still has its source payload, in id order."""
        last_id: UUID | None = None
        while True:
            stmt = select(Order).where(Order.raw.is_not(None)).order_by(Order.id).limit(batch_size)
            if last_id is not None:
                stmt = stmt.where(Order.id > last_id)
            result = await self.session.execute(stmt)
            batch = list(result.scalars().all())
            if not batch:
                return
            for order in batch:
                yield order
            last_id = batch[-1].id

    @staticmethod
    def _record_update(order: Order, actor: Actor, fields: list[str]) -> None:
        # Only portal edits count; they freeze the re-ingested columns
        if actor.role is ActorRole.SHOPIFY:
            return
        order.updated_by_role = actor.role
        order.updated_by_email = actor.email
        order.update_count = (order.update_count or 0) + 1
        if fields:
            order.last_updated_fields = fields

    # ------------------------------------------------------------------
    # Partners
    # ------------------------------------------------------------------

    async def list_partners(self) -> list[Partner]:
        """The partner roster in assignment order (creation time, then id)."""
        stmt = select(Partner).order_by(Partner.created_at.asc(), Partner.id.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_partner(self, partner_id: UUID) -> Partner | None:
        return await self.session.get(Partner, partner_id)

    async def create_partner(self, fields: Mapping[str, Any]) -> Partner:
        partner = Partner(**fields)
        self.session.add(partner)
        await self.session.flush()
        return partner

    async def update_partner(self, partner: Partner, fields: Mapping[str, Any]) -> Partner:
        for name, value in fields.items():
            setattr(partner, name, value)
        await self.session.flush()
        return partner

    async def unassign_partner_orders(self, partner_id: UUID) -> int:
        """Detach every order from a partner; assigned orders go back to new."""
        stmt = (
            update(Order)
            .where(Order.partner_id == partner_id)
            .values(
                partner_id=None,
                assigned_at=None,
                status=case(
                    (
                        Order.status == OrderStatus.ASSIGNED,
                        literal(OrderStatus.NEW, Order.__table__.c.status.type),
                    ),
                    else_=Order.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete_partner(self, partner: Partner) -> int:
        """Delete a partner after unassigning its orders; returns orders unassigned."""
        unassigned = await self.unassign_partner_orders(partner.id)
        await self.session.delete(partner)
        await self.session.flush()
        return unassigned
