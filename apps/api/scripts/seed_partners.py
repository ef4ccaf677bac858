"""Seed a development partner roster.

Replaces any partners with the same names. Roster order (creation time)
decides which partner wins overlapping ranges, so partners are inserted one
by one in the order listed.

Usage:
    cd apps/api && uv run python -m scripts.seed_partners
"""

import asyncio

from sqlalchemy import delete

from blomst.core.database import async_session_maker
from blomst.models.partner import Partner
from blomst.services.order_repository import OrderRepository

PARTNERS = [
    {
        "name": "Blomsterhuset Nørrebro",
        "email": "norrebro@example.com",
        "phone": "+45 11 22 33 44",
        "address": "Nørrebrogade 10, 2200 København N",
        "zone_ranges": ["2200", "1000-2499"],
    },
    {
        "name": "Køge Blomster",
        "email": "koge@example.com",
        "phone": "+45 55 66 77 88",
        "address": "Torvet 3, 4600 Køge",
        "zone_ranges": ["4600", "4000-4099"],
    },
    {
        "name": "Aarhus Flora",
        "email": "aarhus@example.com",
        "phone": None,
        "address": "Søndergade 1, 8000 Aarhus C",
        "zone_ranges": ["8000-8999"],
    },
]


async def main() -> None:
    async with async_session_maker() as session:
        repository = OrderRepository(session)
        names = [p["name"] for p in PARTNERS]
        for partner in await repository.list_partners():
            if partner.name in names:
                await repository.unassign_partner_orders(partner.id)
        await session.execute(delete(Partner).where(Partner.name.in_(names)))

        created = []
        for fields in PARTNERS:
            created.append(await repository.create_partner(fields))
            # Separate statements keep created_at strictly increasing
            await session.commit()

    print("=" * 60)
    print("  Partner roster seeded")
    print("=" * 60)
    for partner in created:
        print(f"  {partner.id}  {partner.name:<28} {', '.join(partner.zone_ranges)}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
