"""Order report schemas for the admin dashboard."""

from pydantic import Field

from blomst.schemas.common import BaseSchema
from blomst.schemas.order import OrderResponse


class OrderReportSummary(BaseSchema):
    """Order counts for a report window."""

    total: int = 0
    new: int = 0
    assigned: int = 0
    in_production: int = 0
    ready: int = 0
    fulfilled: int = 0
    cancelled: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)  # only statuses present


class OrderReport(BaseSchema):
    """Filtered orders plus their summary."""

    summary: OrderReportSummary
    orders: list[OrderResponse] = Field(default_factory=list)
