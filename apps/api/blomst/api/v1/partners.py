"""Partner roster management (admin only)."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from blomst.core.deps import AdminActor, OrderRepo
from blomst.models.partner import Partner
from blomst.schemas.partner import PartnerBase, PartnerResponse, PartnerUpdate
from blomst.services.ingestion.zones import is_valid_range_entry
from blomst.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)

router = APIRouter()


# === Helpers ===


async def _get_partner_or_404(partner_id: UUID, repository: OrderRepository) -> Partner:
    partner = await repository.get_partner(partner_id)
    if partner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Partner not found",
        )
    return partner


def _clean_zone_ranges(ranges: list[str]) -> list[str]:
    """Strip entries and reject anything that is not a postal code or range."""
    cleaned = [entry.strip() for entry in ranges if entry.strip()]
    invalid = [entry for entry in cleaned if not is_valid_range_entry(entry)]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid zone ranges: {', '.join(invalid)}",
        )
    return cleaned


# === Endpoints ===


@router.get("", response_model=list[PartnerResponse])
async def list_partners(
    actor: AdminActor,  # noqa: ARG001
    repository: OrderRepo,
) -> list[PartnerResponse]:
    """List partners in assignment order."""
    partners = await repository.list_partners()
    return [PartnerResponse.model_validate(p) for p in partners]


@router.post("", response_model=PartnerResponse, status_code=status.HTTP_201_CREATED)
async def create_partner(
    data: PartnerBase,
    actor: AdminActor,  # noqa: ARG001
    repository: OrderRepo,
) -> PartnerResponse:
    """Add a partner."""
    fields = data.model_dump()
    fields["zone_ranges"] = _clean_zone_ranges(data.zone_ranges)
    partner = await repository.create_partner(fields)
    await repository.commit()
    logger.info("Created partner %s (%s)", partner.id, partner.name)
    return PartnerResponse.model_validate(partner)


@router.get("/{partner_id}", response_model=PartnerResponse)
async def get_partner(
    partner_id: UUID,
    actor: AdminActor,  # noqa: ARG001
    repository: OrderRepo,
) -> PartnerResponse:
    """Get one partner."""
    partner = await _get_partner_or_404(partner_id, repository)
    return PartnerResponse.model_validate(partner)


@router.patch("/{partner_id}", response_model=PartnerResponse)
async def update_partner(
    partner_id: UUID,
    data: PartnerUpdate,
    actor: AdminActor,  # noqa: ARG001
    repository: OrderRepo,
) -> PartnerResponse:
    """Update partner details or coverage. Existing assignments are kept."""
    partner = await _get_partner_or_404(partner_id, repository)
    fields = data.model_dump(exclude_unset=True)
    if fields.get("name") is None:
        fields.pop("name", None)
    if "zone_ranges" in fields:
        fields["zone_ranges"] = _clean_zone_ranges(fields["zone_ranges"] or [])
    partner = await repository.update_partner(partner, fields)
    await repository.commit()
    return PartnerResponse.model_validate(partner)


@router.delete("/{partner_id}")
async def delete_partner(
    partner_id: UUID,
    actor: AdminActor,  # noqa: ARG001
    repository: OrderRepo,
) -> dict[str, Any]:
    """Delete a partner; its orders are unassigned first."""
    partner = await _get_partner_or_404(partner_id, repository)
    unassigned = await repository.delete_partner(partner)
    await repository.commit()
    logger.info("Deleted partner %s, unassigned %d orders", partner_id, unassigned)
    return {"success": True, "unassigned": unassigned}
