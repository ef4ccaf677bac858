"""Pure order ingestion pipeline: no I/O, safe to share across requests."""

from blomst.services.ingestion.addons import (
    AddOnExtractor,
    AddOnResult,
    AddOnSource,
    extract_add_ons,
    map_property_to_key,
)
from blomst.services.ingestion.delivery import (
    DeliveryDateExtractor,
    DeliveryInfo,
    DeliveryOption,
    extract_delivery,
)
from blomst.services.ingestion.normalizer import OrderNormalizer, generate_order_number
from blomst.services.ingestion.partners import assign_partner, resolve_partner
from blomst.services.ingestion.text import normalize
from blomst.services.ingestion.zones import ZoneConfig, ZoneMatcher, match_zone

__all__ = [
    # Text
    "normalize",
    # Zones
    "ZoneConfig",
    "ZoneMatcher",
    "match_zone",
    # Delivery
    "DeliveryDateExtractor",
    "DeliveryInfo",
    "DeliveryOption",
    "extract_delivery",
    # Add-ons
    "AddOnExtractor",
    "AddOnResult",
    "AddOnSource",
    "extract_add_ons",
    "map_property_to_key",
    # Partners
    "assign_partner",
    "resolve_partner",
    # Facade
    "OrderNormalizer",
    "generate_order_number",
]
