"""Delivery date extraction from Shopify order payloads.

Florists ask for the delivery day at checkout through whatever the theme
provides: cart attributes, line-item properties, metafields, or Shopify's own
``estimated_delivery_at``. Sources are scanned in a fixed order and every later
match overwrites the earlier one. Calendar days are anchored at 12:00 UTC so
they render as the same day in any European timezone, and "today"/"tomorrow"
follow the Copenhagen civil calendar regardless of the server timezone.
"""

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from blomst.schemas.order import DeliveryOption
from blomst.services.ingestion.payload import (
    NameValue,
    as_list,
    as_mapping,
    as_name_value_pairs,
    as_text,
    line_items,
)
from blomst.services.ingestion.text import normalize, normalize_delivery_key

DEFAULT_TIMEZONE = "Europe/Copenhagen"

# English / Danish / Romanian names used for the delivery-date field
DELIVERY_KEYWORDS: tuple[str, ...] = (
    "leveringsdato",
    "levering dato",
    "delivery date",
    "leveringsvalg",
    "delivery",
    "afhentningsdato",
    "estimated delivery",
    "levering",
    "data livrare",
    "livrare",
)

TODAY_WORDS = frozenset({"today", "i dag", "idag"})
TOMORROW_WORDS = frozenset({"tomorrow", "i morgen", "imorgen"})

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_DAY_FIRST = re.compile(r"^(\d{1,2})[./](\d{1,2})[./](\d{4})$")
_DOTTED_YEAR_FIRST = re.compile(r"^(\d{4})\.(\d{2})\.(\d{2})")

_NOON = time(12, 0, tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class DeliveryInfo:
    """Result of delivery extraction.

    ``delivery_option`` is None when the date is only the order creation time,
    meaning the delivery day is actually unknown.
    """

    delivery_date: datetime | None = None
    delivery_option: DeliveryOption | None = None


def _noon_utc(day: date) -> datetime:
    return datetime.combine(day, _NOON)


def parse_calendar_date(value: Any) -> datetime | None:
    """Parse a customer-entered calendar date to 12:00 UTC on that day.

    Supports ``YYYY-MM-DD``, ``DD.MM.YYYY``, ``DD/MM/YYYY`` and ``YYYY.MM.DD``.
    Returns None for anything else, including impossible dates.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    parts: tuple[str, str, str] | None = None
    if match := _ISO_DATE.match(text):
        parts = (match.group(1), match.group(2), match.group(3))
    elif match := _DAY_FIRST.match(text):
        parts = (match.group(3), match.group(2), match.group(1))
    elif match := _DOTTED_YEAR_FIRST.match(text):
        parts = (match.group(1), match.group(2), match.group(3))
    if parts is None:
        return None

    try:
        return _noon_utc(date(int(parts[0]), int(parts[1]), int(parts[2])))
    except ValueError:
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def today_in(tz: ZoneInfo, now: datetime) -> datetime:
    """Return the civil date of ``now`` in ``tz``, anchored at 12:00 UTC."""
    return _noon_utc(now.astimezone(tz).date())


def tomorrow_in(tz: ZoneInfo, now: datetime) -> datetime:
    """Return the civil day after ``now`` in ``tz``, anchored at 12:00 UTC."""
    return _noon_utc(now.astimezone(tz).date() + timedelta(days=1))


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _is_delivery_key(name: str) -> bool:
    return any(keyword in name for keyword in DELIVERY_KEYWORDS)


class DeliveryDateExtractor:
    """Extract delivery date and option from an order payload.

    The extractor holds only configuration (timezone and clock), so one
    instance can be shared by all requests and workers.
    """

    def __init__(
        self,
        tz: str | ZoneInfo = DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        self.clock = clock or _utc_now

    def extract(self, payload: Mapping[str, Any] | None) -> DeliveryInfo:
        """Run every source in priority order over ``payload``.

        Never raises on malformed data; unknown shapes are skipped. Falls back
        to ``created_at`` with no option when nothing matched.
        """
        order = as_mapping(payload)
        now = self.clock()
        result = DeliveryInfo()

        # 1. Shopify's own estimate
        estimated = parse_timestamp(order.get("estimated_delivery_at"))
        if estimated is not None:
            result = DeliveryInfo(estimated, DeliveryOption.DATE)

        # 2. Order note attributes
        result = self._scan(as_name_value_pairs(order.get("note_attributes")), now, result)

        # 3. Line item properties
        for item in line_items(order):
            result = self._scan(as_name_value_pairs(item.get("properties")), now, result)

        # 4. Metafields, dates only
        for metafield in as_list(order.get("metafields")):
            field = as_mapping(metafield)
            name = normalize_delivery_key(
                f"{as_text(field.get('namespace'))} {as_text(field.get('key'))}"
            )
            if not _is_delivery_key(name):
                continue
            parsed = parse_calendar_date(as_text(field.get("value")))
            if parsed is not None:
                result = DeliveryInfo(parsed, DeliveryOption.DATE)

        # 5. Checkout attributes, falling back to note attributes
        attributes = order.get("attributes")
        if attributes is None:
            attributes = order.get("note_attributes")
        result = self._scan(as_name_value_pairs(attributes), now, result)

        # 6. Nothing explicit: the creation time, flagged as unknown
        if result.delivery_date is None:
            created = parse_timestamp(order.get("created_at"))
            if created is not None:
                result = DeliveryInfo(created, None)

        return result

    def __call__(self, payload: Mapping[str, Any] | None) -> DeliveryInfo:
        return self.extract(payload)

    def classify(self, value: str, now: datetime) -> DeliveryInfo | None:
        """Interpret one delivery attribute value, or None if it is not a date."""
        word = normalize(value)
        if word in TODAY_WORDS:
            return DeliveryInfo(today_in(self.tz, now), DeliveryOption.TODAY)
        if word in TOMORROW_WORDS:
            return DeliveryInfo(tomorrow_in(self.tz, now), DeliveryOption.TOMORROW)
        parsed = parse_calendar_date(value)
        if parsed is not None:
            return DeliveryInfo(parsed, DeliveryOption.DATE)
        return None

    def _scan(
        self, pairs: Iterable[NameValue], now: datetime, current: DeliveryInfo
    ) -> DeliveryInfo:
        for pair in pairs:
            value = pair.value.strip()
            if not value or not _is_delivery_key(normalize_delivery_key(pair.name)):
                continue
            found = self.classify(value, now)
            if found is not None:
                current = found
        return current


def extract_delivery(
    payload: Mapping[str, Any] | None,
    *,
    tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> DeliveryInfo:
    """Extract delivery info with a one-off extractor, optionally at a fixed instant."""
    clock = (lambda: now) if now is not None else None
    return DeliveryDateExtractor(tz, clock).extract(payload)


def extract_delivery_from_stored(
    raw: Mapping[str, Any] | None,
    created_at: datetime | None,
    extractor: DeliveryDateExtractor | None = None,
) -> DeliveryInfo:
    """Re-run extraction over a stored raw payload.

    Used by the delivery-date backfill: only the delivery-bearing parts of the
    stored payload are considered, and the persisted order time replaces the
    payload's ``created_at`` as the fallback.
    """
    stored = as_mapping(raw)
    subset: dict[str, Any] = {
        "note_attributes": stored.get("note_attributes"),
        "line_items": stored.get("line_items"),
        "estimated_delivery_at": stored.get("estimated_delivery_at"),
        "created_at": created_at,
    }
    return (extractor or DeliveryDateExtractor()).extract(subset)
