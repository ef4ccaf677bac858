"""JSON logging shared by the API and the Celery workers."""

import contextvars
import logging
import uuid
from collections.abc import Mapping

from pythonjsonlogger.json import JsonFormatter

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

# Log every SQL statement or Shopify page fetch at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


class RequestIdFilter(logging.Filter):
    """Inject request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")  # type: ignore[attr-defined]
        return True


def build_handler(service: str) -> logging.Handler:
    """Stream handler writing one JSON object per record, tagged with ``service``."""
    handler = logging.StreamHandler()
    handler.setFormatter(
        JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
            static_fields={"service": service},
        )
    )
    handler.addFilter(RequestIdFilter())
    return handler


def setup_logging(*, debug: bool = False, service: str = "api") -> None:
    """Replace the root handlers with the JSON handler."""
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(build_handler(service))
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def request_id_from_headers(headers: Mapping[str, str]) -> str:
    """Reuse the caller's request id or Shopify's webhook id, else mint one.

    Header lookups are expected to be case-insensitive, as Starlette's are.
    """
    return (
        headers.get("x-request-id")
        or headers.get("x-shopify-webhook-id")
        or uuid.uuid4().hex[:16]
    )
