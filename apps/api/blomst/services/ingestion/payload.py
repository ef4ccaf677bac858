"""Tolerant accessors for untrusted Shopify order payloads.

Shopify sends line-item ``properties`` and order ``note_attributes`` either as a
list of ``{"name": ..., "value": ...}`` objects or as a flat object, depending
on the API surface (REST webhook, REST list, GraphQL proxy). Everything is
converted to one ``NameValue`` sequence here so the extractors only ever see a
single shape.
"""

from collections.abc import Mapping
from typing import Any, NamedTuple


class NameValue(NamedTuple):
    """A single name/value customization pair."""

    name: str
    value: str


def as_text(value: Any) -> str:
    """Stringify a scalar payload value; ``None`` becomes ``""``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def as_mapping(value: Any) -> Mapping[str, Any]:
    """Return ``value`` if it is a mapping, else an empty dict."""
    return value if isinstance(value, Mapping) else {}


def as_list(value: Any) -> list[Any]:
    """Return ``value`` as a list if it is a list or tuple, else an empty list."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def as_name_value_pairs(bag: Any) -> list[NameValue]:
    """Normalize a property bag into an ordered list of ``NameValue`` pairs.

    Accepted shapes:
        - ``[{"name": "Card", "value": "Hi"}, ...]`` (``key`` is accepted for ``name``)
        - ``[["Card", "Hi"], ...]``
        - ``["Card", ...]`` (a bare string is used as both name and value)
        - ``{"Card": "Hi", ...}``

    Anything else yields an empty list. Values are kept even when empty;
    filtering is left to the caller.
    """
    if isinstance(bag, Mapping):
        return [NameValue(as_text(k), as_text(v)) for k, v in bag.items()]

    pairs: list[NameValue] = []
    for entry in as_list(bag):
        if isinstance(entry, Mapping):
            name = entry.get("name", entry.get("key"))
            pairs.append(NameValue(as_text(name), as_text(entry.get("value"))))
        elif isinstance(entry, (list, tuple)) and len(entry) == 2:
            pairs.append(NameValue(as_text(entry[0]), as_text(entry[1])))
        elif isinstance(entry, str):
            pairs.append(NameValue(entry, entry))
    return pairs


def line_items(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Return the payload's line items, skipping non-object entries."""
    return [item for item in as_list(payload.get("line_items")) if isinstance(item, Mapping)]
