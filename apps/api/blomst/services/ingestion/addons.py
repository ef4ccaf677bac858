"""Add-on (tilvalg) extraction from Shopify order payloads.

Customers pick cards, ribbons, vases, chocolate and teddy bears in several
ways depending on the theme and apps installed on the shop: as separate
products, as line-item properties, as cart attributes, or typed into the order
note. Every location is scanned, results are deduplicated, and a one-line
summary is built for the order list and print views.
"""

import enum
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from blomst.schemas.order import AddOn
from blomst.services.ingestion.payload import (
    NameValue,
    as_mapping,
    as_name_value_pairs,
    as_text,
    line_items,
)
from blomst.services.ingestion.text import normalize

DEFAULT_CURRENCY = "DKK"
NOTE_FALLBACK_LIMIT = 500
LINE_ITEM_DEFAULT_VALUE = "Yes"
MIN_NAME_LENGTH = 2


class AddOnSource(str, enum.Enum):
    """Where in the payload an add-on was found."""

    LINE_ITEM = "line_item"
    PROPERTY = "property"
    NOTE_ATTRIBUTE = "note_attribute"
    NOTE = "note"


# Category -> synonyms, all pre-normalized (lowercase, no diacritics).
# Specific categories precede their generic counterparts so "Ribbon Text"
# resolves to ribbon_text before ribbon.
CATEGORY_SYNONYMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "card_message",
        (
            "card text",
            "card message",
            "korttekst",
            "kort tekst",
            "message",
            "dedication",
            "bemærkning",
            "besked",
            "mesaj",
        ),
    ),
    ("card", ("card", "kort", "felicitare", "felicitacion")),
    ("ribbon_text", ("ribbon text", "band tekst", "ribbon tekst", "sløjfetekst", "text panglica")),
    ("ribbon", ("ribbon", "band", "panglica", "sløjfe")),
    ("vase", ("vase", "vaza")),
    ("chocolate", ("chocolate", "chokolade", "ciocolata")),
    ("teddy", ("teddy", "bamse", "ursulet", "bjørn", "teddy bear")),
)
OTHER_CATEGORY = "other"

# Title keywords marking a product line as an add-on rather than a bouquet
ADDON_KEYWORDS: tuple[str, ...] = (
    "card",
    "kort",
    "felicitare",
    "chocolate",
    "chokolade",
    "vase",
    "vaza",
    "teddy",
    "bamse",
    "ursulet",
    "bjørn",
    "ribbon",
    "band",
    "panglica",
    "ekstra",
    "extra",
    "add-on",
    "tilvalg",
    "addon",
)

ADDON_SKU_PREFIXES: tuple[str, ...] = ("ADDON_", "EXTRA_", "TILVALG_")

_NOTE_LINE = re.compile(r"^([^:]+):\s*(.+)$")
_LINE_BREAK = re.compile(r"\r?\n")


def map_property_to_key(name: Any) -> str:
    """Map a property or product name to an add-on category.

    A category matches when the normalized name contains one of its synonyms
    or a synonym contains the name. Containing matches are tried across the
    whole table before contained ones; within each the first category in
    table order wins. No match yields ``"other"``.
    """
    normalized = normalize(name)
    if not normalized:
        return OTHER_CATEGORY
    for category, synonyms in CATEGORY_SYNONYMS:
        if any(synonym in normalized for synonym in synonyms):
            return category
    for category, synonyms in CATEGORY_SYNONYMS:
        if any(normalized in synonym for synonym in synonyms):
            return category
    return OTHER_CATEGORY


def is_addon_line_item(item: Mapping[str, Any]) -> bool:
    """Check whether a line item is an add-on product by SKU prefix or title."""
    sku = as_text(item.get("sku")).upper()
    if any(sku.startswith(prefix) for prefix in ADDON_SKU_PREFIXES):
        return True
    title = normalize(as_text(item.get("title") or item.get("name")))
    variant_title = normalize(as_text(item.get("variant_title")))
    return any(keyword in title or keyword in variant_title for keyword in ADDON_KEYWORDS)


def dedupe(add_ons: Iterable[AddOn]) -> list[AddOn]:
    """Drop exact (source, key, label, value) repeats, keeping first occurrences."""
    seen: set[tuple[str, str, str, str]] = set()
    unique: list[AddOn] = []
    for add_on in add_ons:
        marker = (add_on.source, add_on.key, add_on.label, add_on.value)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(add_on)
    return unique


def summarize(add_ons: Sequence[AddOn]) -> str | None:
    """Build the ``"2× Card: Birthday (25.00 DKK) | Ribbon: Red"`` summary line."""
    parts = []
    for add_on in add_ons:
        text = f"{add_on.label}: {add_on.value}"
        if add_on.quantity > 1:
            text = f"{add_on.quantity}× {text}"
        if add_on.price:
            currency = f" {add_on.currency}" if add_on.currency else ""
            text = f"{text} ({add_on.price}{currency})"
        parts.append(text)
    return " | ".join(parts) or None


def describe_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Summarize where add-ons could live in a payload, without customer data."""
    order = as_mapping(payload)
    items = line_items(order)
    note = order.get("note")
    return {
        "line_items_count": len(items),
        "line_items": [
            {
                "title": item.get("title"),
                "variant_title": item.get("variant_title"),
                "sku": item.get("sku"),
                "quantity": item.get("quantity"),
                "properties_keys": [p.name for p in as_name_value_pairs(item.get("properties"))],
            }
            for item in items
        ],
        "note_attributes_keys": [p.name for p in as_name_value_pairs(order.get("note_attributes"))],
        "order_note_length": len(as_text(note)) if note else 0,
    }


def _line_item_price(item: Mapping[str, Any]) -> str | None:
    shop_money = as_mapping(as_mapping(item.get("price_set")).get("shop_money"))
    price = shop_money.get("amount", item.get("price"))
    if isinstance(price, Mapping):
        price = price.get("amount")
    return None if price is None or price == "" else as_text(price)


def _quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return max(quantity, 1)


@dataclass(slots=True)
class AddOnResult:
    """Deduplicated add-ons plus the display summary (None when empty)."""

    add_ons: list[AddOn] = field(default_factory=list)
    summary: str | None = None


class AddOnExtractor:
    """Extract customer add-on selections from an order payload."""

    def __init__(self, default_currency: str = DEFAULT_CURRENCY) -> None:
        self.default_currency = default_currency

    def extract(self, payload: Mapping[str, Any] | None) -> AddOnResult:
        """Run all extraction passes, then dedupe and summarize.

        Args:
            payload: Raw Shopify order JSON. Never mutated.

        Returns:
            AddOnResult with add-ons in order of first occurrence.
        """
        order = as_mapping(payload)
        currency = as_text(
            order.get("currency") or order.get("presentment_currency") or self.default_currency
        )
        items = line_items(order)
        found: list[AddOn] = []

        # Add-on products
        for item in items:
            if not is_addon_line_item(item):
                continue
            title = as_text(item.get("title") or item.get("name"))
            variant_title = as_text(item.get("variant_title")).strip()
            found.append(
                AddOn(
                    source=AddOnSource.LINE_ITEM.value,
                    key=map_property_to_key(title),
                    label=title or "Add-on",
                    value=variant_title or LINE_ITEM_DEFAULT_VALUE,
                    quantity=_quantity(item.get("quantity")),
                    price=_line_item_price(item),
                    currency=currency,
                    line_item_title=title or None,
                    sku=as_text(item.get("sku")) or None,
                    raw_key=title or None,
                )
            )

        # Line item properties, all of them
        for item in items:
            title = as_text(item.get("title") or item.get("name")) or None
            sku = as_text(item.get("sku")) or None
            for pair in as_name_value_pairs(item.get("properties")):
                add_on = self._from_pair(
                    AddOnSource.PROPERTY, pair, currency, line_item_title=title, sku=sku
                )
                if add_on is not None:
                    found.append(add_on)

        # Order note attributes
        for pair in as_name_value_pairs(order.get("note_attributes")):
            add_on = self._from_pair(AddOnSource.NOTE_ATTRIBUTE, pair, currency)
            if add_on is not None:
                found.append(add_on)

        # "Key: Value" lines typed into the order note
        note = as_text(order.get("note")).strip()
        if note:
            for line in _LINE_BREAK.split(note):
                match = _NOTE_LINE.match(line)
                if not match:
                    continue
                add_on = self._from_pair(
                    AddOnSource.NOTE, NameValue(match.group(1), match.group(2)), currency
                )
                if add_on is not None:
                    found.append(add_on)

        # A note with nothing structured anywhere is most likely the card text
        if not found and note:
            found.append(
                AddOn(
                    source=AddOnSource.NOTE.value,
                    key="card_message",
                    label="Note",
                    value=note[:NOTE_FALLBACK_LIMIT],
                    quantity=1,
                    currency=currency,
                    raw_key="note",
                )
            )

        unique = dedupe(found)
        return AddOnResult(add_ons=unique, summary=summarize(unique))

    def __call__(self, payload: Mapping[str, Any] | None) -> AddOnResult:
        return self.extract(payload)

    def _from_pair(
        self,
        source: AddOnSource,
        pair: NameValue,
        currency: str,
        line_item_title: str | None = None,
        sku: str | None = None,
    ) -> AddOn | None:
        name = pair.name.strip()
        value = pair.value.strip()
        if not name or not value:
            return None
        # Shopify hides "_"-prefixed properties in the storefront; keep them, unprefixed
        label = name.lstrip("_").strip()
        if len(normalize(label)) < MIN_NAME_LENGTH:
            return None
        return AddOn(
            source=source.value,
            key=map_property_to_key(label),
            label=label,
            value=value,
            quantity=1,
            currency=currency,
            line_item_title=line_item_title,
            sku=sku,
            raw_key=name,
        )


def extract_add_ons(
    payload: Mapping[str, Any] | None, default_currency: str = DEFAULT_CURRENCY
) -> AddOnResult:
    """Extract add-ons with a one-off extractor."""
    return AddOnExtractor(default_currency).extract(payload)
