"""Partner assignment by postal-code zone ranges."""

from collections.abc import Iterable, Sequence
from typing import Any, Protocol, TypeVar

from blomst.services.ingestion.zones import parse_postal_code, postal_code_in_range


class PartnerCandidate(Protocol):
    """Anything carrying an ordered list of postal-code range strings."""

    zone_ranges: Sequence[str]


P = TypeVar("P", bound=PartnerCandidate)


def partner_covers(partner: PartnerCandidate, postal_code: Any) -> bool:
    """Check whether any of the partner's zone ranges contains ``postal_code``."""
    code = parse_postal_code(postal_code)
    if code is None:
        return False
    return any(postal_code_in_range(code, entry) for entry in partner.zone_ranges or ())


def resolve_partner(zone: str | None, postal_code: Any, partners: Iterable[P]) -> P | None:
    """Pick the partner for an order's zone and postal code.

    Returns None when the order has no zone. Otherwise returns the first
    partner in roster order with a range containing the postal code, even if
    a later partner has a narrower match. Callers control precedence through
    roster order.
    """
    if not zone:
        return None
    code = parse_postal_code(postal_code)
    if code is None:
        return None
    for partner in partners:
        for entry in partner.zone_ranges or ():
            if postal_code_in_range(code, entry):
                return partner
    return None


def assign_partner(order: Any, partners: Iterable[P]) -> P | None:
    """Resolve the partner for a canonical order; never mutates either side."""
    shipping = getattr(order, "shipping_address", None)
    postal_code = getattr(shipping, "postal_code", None)
    return resolve_partner(getattr(order, "zone", None), postal_code, partners)
