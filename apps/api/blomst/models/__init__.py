"""SQLAlchemy models."""

from blomst.models.base import Base
from blomst.models.order import Order
from blomst.models.partner import Partner

__all__ = [
    # Base
    "Base",
    # Orders
    "Order",
    "Partner",
]
