"""Order report endpoints for the admin dashboard."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Query

from blomst.core.config import settings
from blomst.core.deps import AdminActor, OrderRepo
from blomst.schemas.order import OrderStatus
from blomst.schemas.report import OrderReport
from blomst.services.order_filters import delivery_date_window, received_window
from blomst.services.report_service import OrderReportService

router = APIRouter()


@router.get("/orders", response_model=OrderReport)
async def order_report(
    actor: AdminActor,  # noqa: ARG001
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
    partner_id: UUID | None = Query(None),
) -> OrderReport:
    """Get filtered orders with per-status counts. Admin only."""
    tz = settings.delivery_timezone
    service = OrderReportService(repository)
    return await service.order_report(
        delivery=delivery_date_window(
            delivery, delivery_date, delivery_from, delivery_to, tz=tz
        ),
        received=received_window(received, received_from, received_to, tz=tz),
        status=order_status,
        zone=zone,
        partner_id=partner_id,
    )
