"""HMAC signing helper for simulating Shopify order webhooks.

Reads a JSON body from stdin and outputs the base64-encoded HMAC-SHA256
signature using SHOPIFY_WEBHOOK_SECRET from the environment (or .env file).

Usage:
    echo '{"id": 123}' | cd apps/api && uv run python -m scripts.sign_webhook

    # Full curl example:
    BODY='{"id":820982911946154508,"name":"#1001","note":"Levering: i morgen"}'
    HMAC=$(echo -n "$BODY" | uv run python -m scripts.sign_webhook)
    curl -X POST http://localhost:8000/api/v1/webhooks/shopify/orders \\
      -H "Content-Type: application/json" \\
      -H "X-Shopify-Topic: orders/create" \\
      -H "X-Shopify-Hmac-Sha256: $HMAC" \\
      -d "$BODY"
"""

import sys

from blomst.core.config import settings
from blomst.integrations.shopify.webhooks import compute_hmac


def main() -> None:
    secret = settings.shopify_webhook_secret
    if not secret:
        print("ERROR: SHOPIFY_WEBHOOK_SECRET is not set in .env", file=sys.stderr)
        sys.exit(1)

    body = sys.stdin.buffer.read()
    if not body:
        print("ERROR: No input received on stdin", file=sys.stderr)
        sys.exit(1)

    print(compute_hmac(body, secret), end="")


if __name__ == "__main__":
    main()
