"""Order reporting over the filtered order listing."""

import logging
from collections import Counter
from collections.abc import Iterable
from uuid import UUID

from blomst.models.order import Order
from blomst.schemas.order import OrderResponse, OrderStatus
from blomst.schemas.report import OrderReport, OrderReportSummary
from blomst.services.order_filters import DateWindow
from blomst.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)

REPORT_LIMIT = 1000


def summarize_orders(orders: Iterable[Order]) -> OrderReportSummary:
    """Count orders per status."""
    counts = Counter(OrderStatus(order.status) for order in orders)
    return OrderReportSummary(
        total=sum(counts.values()),
        new=counts[OrderStatus.NEW],
        assigned=counts[OrderStatus.ASSIGNED],
        in_production=counts[OrderStatus.IN_PRODUCTION],
        ready=counts[OrderStatus.READY],
        fulfilled=counts[OrderStatus.FULFILLED],
        cancelled=counts[OrderStatus.CANCELLED],
        by_status={status.value: counts[status] for status in OrderStatus if counts[status]},
    )


class OrderReportService:
    """Builds admin order reports from the repository listing."""

    def __init__(self, repository: OrderRepository) -> None:
        self.repository = repository

    async def order_report(
        self,
        *,
        delivery: DateWindow | None = None,
        received: DateWindow | None = None,
        status: OrderStatus | None = None,
        zone: str | None = None,
        partner_id: UUID | None = None,
        limit: int = REPORT_LIMIT,
    ) -> OrderReport:
        """Return the matching orders, soonest delivery first, with status counts."""
        orders = await self.repository.list_orders(
            delivery=delivery,
            received=received,
            status=status,
            zone=zone,
            partner_id=partner_id,
            limit=limit,
        )
        summary = summarize_orders(orders)
        logger.info("Order report: total=%d by_status=%s", summary.total, summary.by_status)
        return OrderReport(
            summary=summary,
            orders=[OrderResponse.model_validate(order) for order in orders],
        )
