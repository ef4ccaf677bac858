"""Pydantic schemas for ingestion and request/response validation."""

from blomst.schemas.common import BaseSchema, HealthResponse, WebhookAck
from blomst.schemas.order import (
    SHOPIFY_ACTOR,
    Actor,
    ActorRole,
    AddOn,
    AssignRequest,
    CancelRequest,
    CanonicalOrder,
    Customer,
    DeliveryOption,
    LineItem,
    ManualOrderCreate,
    OrderResponse,
    OrderStatus,
    OrderUpdate,
    ShippingAddress,
    StatusUpdate,
    SyncResponse,
)
from blomst.schemas.partner import PartnerBase, PartnerResponse, PartnerUpdate
from blomst.schemas.report import OrderReport, OrderReportSummary

__all__ = [
    "BaseSchema",
    "HealthResponse",
    "WebhookAck",
    # Orders
    "SHOPIFY_ACTOR",
    "Actor",
    "ActorRole",
    "AddOn",
    "AssignRequest",
    "CancelRequest",
    "CanonicalOrder",
    "Customer",
    "DeliveryOption",
    "LineItem",
    "ManualOrderCreate",
    "OrderResponse",
    "OrderStatus",
    "OrderUpdate",
    "ShippingAddress",
    "StatusUpdate",
    "SyncResponse",
    # Partners
    "PartnerBase",
    "PartnerResponse",
    "PartnerUpdate",
    # Reports
    "OrderReport",
    "OrderReportSummary",
]
