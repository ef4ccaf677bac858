"""Postal-code to delivery-zone matching.

The zone table is an ordered mapping of postal-code keys to zone labels. A key
is either an exact code (``"4600"``) or an inclusive range (``"1000-2999"``).
Entries may overlap; the first matching entry in table order wins.
"""

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Postal codes are short; longer digit runs are junk and never parse.
_LEADING_INT = re.compile(r"^\s*([+-]?\d{1,18})(?!\d)")


def parse_postal_code(value: Any) -> int | None:
    """Parse the leading integer of a postal code.

    ``"2200"``, ``" 2200 "`` and ``"2200 København N"`` all parse to 2200;
    ``"DK-2200"``, ``""`` and ``None`` do not parse.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def postal_code_in_range(code: int | None, entry: str) -> bool:
    """Check a parsed postal code against one range or exact-code entry.

    Entries containing ``-`` are inclusive ``start-end`` ranges, anything else
    is an exact code. Malformed entries never match.
    """
    if code is None or not isinstance(entry, str):
        return False
    if "-" in entry:
        start_str, end_str = (entry.split("-") + [""])[:2]
        start = parse_postal_code(start_str)
        end = parse_postal_code(end_str)
        if start is None or end is None:
            return False
        return start <= code <= end
    exact = parse_postal_code(entry)
    return exact is not None and exact == code


def is_valid_range_entry(entry: str) -> bool:
    """Whether ``entry`` is an exact code or a well-ordered ``start-end`` range."""
    if "-" in entry:
        start_str, _, end_str = entry.partition("-")
        start = parse_postal_code(start_str)
        end = parse_postal_code(end_str)
        return start is not None and end is not None and start <= end
    return parse_postal_code(entry) is not None


@dataclass(frozen=True, slots=True)
class ZoneConfig:
    """Ordered, read-only zone table."""

    entries: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ZoneConfig":
        """Build a config from a mapping, preserving its insertion order."""
        return cls(tuple((str(key), str(label)) for key, label in mapping.items()))

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "ZoneConfig":
        return cls(tuple((str(key), str(label)) for key, label in pairs))

    @classmethod
    def from_file(cls, path: str | Path) -> "ZoneConfig":
        """Load a zone table from a JSON object file.

        A missing or invalid file yields an empty table so the service still
        starts; orders simply stay without a zone.
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Zone config %s not found or invalid, using empty zone table", path)
            return cls()
        if not isinstance(data, Mapping):
            logger.warning("Zone config %s is not a JSON object, using empty zone table", path)
            return cls()
        return cls.from_mapping(data)

    def __len__(self) -> int:
        return len(self.entries)


class ZoneMatcher:
    """Resolve postal codes to zone labels using an injected ``ZoneConfig``."""

    def __init__(self, config: ZoneConfig) -> None:
        self.config = config

    def match(self, postal_code: Any) -> str | None:
        """Return the label of the first zone entry containing ``postal_code``.

        Args:
            postal_code: Raw postal code from the shipping address.

        Returns:
            The zone label, or None when the code is missing, not numeric, or
            matches no entry.
        """
        code = parse_postal_code(postal_code)
        if code is None:
            return None
        for key, label in self.config.entries:
            if postal_code_in_range(code, key):
                return label
        return None

    def __call__(self, postal_code: Any) -> str | None:
        return self.match(postal_code)


def match_zone(postal_code: Any, config: ZoneConfig) -> str | None:
    """Match ``postal_code`` against ``config``; see ``ZoneMatcher.match``."""
    return ZoneMatcher(config).match(postal_code)
