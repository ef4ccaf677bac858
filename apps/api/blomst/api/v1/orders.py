"""Portal order endpoints.

Admins see and manage every order; partners only the orders assigned to them.
"""

from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from blomst.core.config import settings
from blomst.core.deps import AdminActor, CurrentActor, ManagementService, OrderRepo
from blomst.models.order import Order
from blomst.schemas.order import (
    Actor,
    ActorRole,
    AssignRequest,
    CancelRequest,
    ManualOrderCreate,
    OrderResponse,
    OrderStatus,
    OrderUpdate,
    StatusUpdate,
)
from blomst.services.order_filters import delivery_date_window, received_window
from blomst.services.order_repository import OrderRepository
from blomst.services.order_service import OrderEditError
from blomst.workers.tasks.orders import sync_orders

router = APIRouter()


# =============================================================================
# Helpers
# =============================================================================


def _ensure_access(order: Order, actor: Actor) -> None:
    """Partners may only touch orders assigned to them."""
    if actor.role is ActorRole.PARTNER and order.partner_id != actor.partner_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )


async def _get_order_for_actor(
    order_id: UUID, actor: Actor, repository: OrderRepository
) -> Order:
    order = await repository.get_order(order_id)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        )
    _ensure_access(order, actor)
    return order


def _to_response(order: Order) -> OrderResponse:
    return OrderResponse.model_validate(order)


# =============================================================================
# Listing
# =============================================================================


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    actor: CurrentActor,
    repository: OrderRepo,
    delivery: Literal["today", "tomorrow"] | None = Query(None),
    delivery_date: str | None = Query(None, description="Exact delivery day, YYYY-MM-DD"),
    delivery_from: str | None = Query(None),
    delivery_to: str | None = Query(None),
    received: Literal["today", "last24h", "week"] | None = Query(None),
    received_from: str | None = Query(None),
    received_to: str | None = Query(None),
    order_status: OrderStatus | None = Query(None, alias="status"),
    zone: str | None = Query(None),
    postal_code: str | None = Query(None),
    partner_id: UUID | None = Query(None),
) -> list[OrderResponse]:
    """List orders, soonest delivery first.

    Day-based filters are evaluated in the delivery timezone.
    """
    tz = settings.delivery_timezone
    if actor.role is ActorRole.PARTNER:
        partner_id = actor.partner_id

    orders = await repository.list_orders(
        delivery=delivery_date_window(
            delivery, delivery_date, delivery_from, delivery_to, tz=tz
        ),
        received=received_window(received, received_from, received_to, tz=tz),
        status=order_status,
        zone=zone,
        postal_code=postal_code,
        partner_id=partner_id,
    )
    return [_to_response(order) for order in orders]


# =============================================================================
# Manual orders and polling
# =============================================================================


@router.post("/manual", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_order(
    data: ManualOrderCreate,
    actor: CurrentActor,
    repository: OrderRepo,
    service: ManagementService,
) -> OrderResponse:
    """Create a phone or walk-in order.

    A partner's order is assigned to that partner; an admin may pick a
    partner or leave routing to the zone table.
    """
    if actor.role is ActorRole.ADMIN and data.partner_id is not None:
        if await repository.get_partner(data.partner_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Partner not found",
            )

    order = await service.create_manual_order(data, actor)
    await repository.commit()
    return _to_response(order)


@router.post("/sync", status_code=status.HTTP_202_ACCEPTED)
async def trigger_sync(
    actor: AdminActor,  # noqa: ARG001
    limit: int | None = Query(None, ge=1, le=250),
) -> dict[str, Any]:
    """Queue an immediate Shopify order poll."""
    task = sync_orders.delay(limit)
    return {"status": "queued", "task_id": task.id}


# =============================================================================
# Single order
# =============================================================================


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    repository: OrderRepo,
) -> OrderResponse:
    """Get one order."""
    order = await _get_order_for_actor(order_id, actor, repository)
    return _to_response(order)


@router.patch("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: UUID,
    data: OrderUpdate,
    actor: CurrentActor,
    repository: OrderRepo,
    service: ManagementService,
) -> OrderResponse:
    """Edit an order. Edited fields stop being refreshed from Shopify."""
    order = await _get_order_for_actor(order_id, actor, repository)
    try:
        order = await service.edit_order(order, data.model_dump(exclude_unset=True), actor)
    except OrderEditError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await repository.commit()
    return _to_response(order)


@router.post("/{order_id}/status", response_model=OrderResponse)
async def change_status(
    order_id: UUID,
    data: StatusUpdate,
    actor: CurrentActor,
    repository: OrderRepo,
    service: ManagementService,
) -> OrderResponse:
    """Set the order status."""
    order = await _get_order_for_actor(order_id, actor, repository)
    order = await service.change_status(order, data.status, actor)
    await repository.commit()
    return _to_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    actor: CurrentActor,
    repository: OrderRepo,
    service: ManagementService,
    data: CancelRequest | None = None,
) -> OrderResponse:
    """Cancel an order, recording who cancelled it and why."""
    order = await _get_order_for_actor(order_id, actor, repository)
    order = await service.cancel(order, actor, reason=data.reason if data else "")
    await repository.commit()
    return _to_response(order)


@router.post("/{order_id}/assign", response_model=OrderResponse)
async def assign_order(
    order_id: UUID,
    data: AssignRequest,
    actor: AdminActor,
    repository: OrderRepo,
    service: ManagementService,
) -> OrderResponse:
    """Manually assign a partner (admin only)."""
    order = await _get_order_for_actor(order_id, actor, repository)
    partner = await repository.get_partner(data.partner_id)
    if partner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Partner not found",
        )
    order = await service.assign(order, partner, actor)
    await repository.commit()
    return _to_response(order)
