"""Shopify order webhook handlers.

Deliveries are verified and acknowledged immediately; ingestion runs in a
Celery worker so Shopify never waits on the database.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request, status

from blomst.core.config import settings
from blomst.integrations.shopify.webhooks import WebhookTopic, verify_webhook
from blomst.schemas.common import WebhookAck
from blomst.workers.tasks.orders import process_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


async def _verify_and_parse(request: Request) -> dict[str, Any]:
    """Read body, verify HMAC, parse JSON."""
    body = await request.body()

    secret = settings.shopify_webhook_secret
    if not secret:
        logger.error("Rejecting Shopify webhook: SHOPIFY_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook secret not configured"
        )

    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256", "")
    if not verify_webhook(body, hmac_header, secret):
        logger.warning("Rejecting Shopify webhook with invalid signature")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid JSON")
    return data


def _dispatch(topic: str, data: dict[str, Any]) -> WebhookAck:
    process_webhook.delay(topic, data)
    logger.info("Queued %s webhook for order %s", topic, data.get("id"))
    return WebhookAck(status="accepted", topic=topic)


@router.get("/ping")
async def ping() -> dict[str, str]:
    """Reachability check for webhook configuration."""
    return {"status": "ok"}


@router.post("/orders")
async def orders_webhook(
    request: Request,
    x_shopify_topic: str = Header(default=""),
) -> WebhookAck:
    """Handle any order webhook, dispatching on the ``X-Shopify-Topic`` header."""
    data = await _verify_and_parse(request)
    topic = x_shopify_topic.strip()
    if topic not in {t.value for t in WebhookTopic}:
        logger.info("Ignoring unhandled Shopify webhook topic %r", topic)
        return WebhookAck(status="ignored", topic=topic or None)
    return _dispatch(topic, data)


@router.post("/orders-create")
async def orders_create(request: Request) -> WebhookAck:
    """Handle order creation webhook."""
    data = await _verify_and_parse(request)
    return _dispatch(WebhookTopic.ORDERS_CREATE.value, data)


@router.post("/orders-paid")
async def orders_paid(request: Request) -> WebhookAck:
    """Handle order payment webhook."""
    data = await _verify_and_parse(request)
    return _dispatch(WebhookTopic.ORDERS_PAID.value, data)


@router.post("/orders-updated")
async def orders_updated(request: Request) -> WebhookAck:
    """Handle order update webhook (tracking, fulfillment)."""
    data = await _verify_and_parse(request)
    return _dispatch(WebhookTopic.ORDERS_UPDATED.value, data)


@router.post("/orders-cancelled")
async def orders_cancelled(request: Request) -> WebhookAck:
    """Handle order cancellation webhook."""
    data = await _verify_and_parse(request)
    return _dispatch(WebhookTopic.ORDERS_CANCELLED.value, data)
