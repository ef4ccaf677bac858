"""Locale-insensitive key normalization shared by the order extractors."""

import re
import unicodedata
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def normalize(value: Any) -> str:
    """Normalize a loosely written key for fuzzy matching.

    Lowercases, trims, strips combining diacritical marks (NFD) and
    collapses whitespace runs, so "Leveringsdato ", "LEVERINGSDATO" and
    "Panglică" compare equal to their plain forms.

    Args:
        value: Any value. Non-strings normalize to an empty string.

    Returns:
        The normalized string, possibly empty.
    """
    if not isinstance(value, str) or not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.lower().strip())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", stripped).strip()


def normalize_delivery_key(value: Any) -> str:
    """Normalize a delivery attribute name; underscores count as spaces."""
    if not isinstance(value, str):
        return ""
    return normalize(value.replace("_", " "))
