"""Shopify webhook HMAC verification and order topics."""

import base64
import enum
import hashlib
import hmac


class WebhookTopic(str, enum.Enum):
    """Order webhook topics handled by the ingestion service."""

    ORDERS_CREATE = "orders/create"
    ORDERS_PAID = "orders/paid"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_CANCELLED = "orders/cancelled"

    @property
    def path(self) -> str:
        """URL path segment for per-topic endpoints, e.g. ``orders-create``."""
        return self.value.replace("/", "-")


def compute_hmac(data: bytes, secret: str) -> str:
    """Return the base64 HMAC-SHA256 Shopify sends in ``X-Shopify-Hmac-Sha256``."""
    return base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            data,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")


def verify_webhook(data: bytes, hmac_header: str | None, secret: str) -> bool:
    """Verify a Shopify webhook's HMAC-SHA256 signature.

    Args:
        data: The raw request body bytes.
        hmac_header: The X-Shopify-Hmac-Sha256 header value.
        secret: The webhook signing secret.

    Returns:
        True if the signature is valid. A missing secret or header never
        verifies.
    """
    if not secret or not hmac_header:
        return False
    computed = compute_hmac(data, secret)
    return hmac.compare_digest(computed.encode("utf-8"), hmac_header.encode("utf-8"))
