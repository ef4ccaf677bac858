"""Partner (fulfilling florist) schemas."""

from uuid import UUID

from pydantic import Field

from blomst.schemas.common import BaseSchema


class PartnerBase(BaseSchema):
    """Partner contact details and coverage."""

    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    zone_ranges: list[str] = Field(
        default_factory=list,
        description='Exact postal codes ("4600") or inclusive ranges ("1000-2999")',
    )


class PartnerResponse(PartnerBase):
    """Partner as stored."""

    id: UUID


class PartnerUpdate(BaseSchema):
    """Partial partner update; only fields that are set are applied."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    zone_ranges: list[str] | None = None
