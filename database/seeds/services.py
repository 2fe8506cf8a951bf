"""
Seed data script for services table.

Demo catalog for a spa / salon. Prices are stored in the smallest currency
unit (CLP has no decimals, so 15000 means $15.000).

Idempotent: services are matched by name, so re-running never duplicates
rows and never edits a service that bookings may already reference.

Can be run standalone: python -m database.seeds.services
"""

import asyncio

from sqlalchemy import select

from database.connection import get_async_session
from database.models import Service

# ============================================================================
# CATALOG
# ============================================================================

SERVICES = [
    {
        "name": "Corte de Cabello",
        "description": "Corte de cabello profesional con lavado incluido",
        "duration_minutes": 45,
        "price_cents": 15000,
        "currency": "CLP",
    },
    {
        "name": "Manicure",
        "description": "Manicure completo con esmaltado tradicional",
        "duration_minutes": 30,
        "price_cents": 8000,
        "currency": "CLP",
    },
    {
        "name": "Pedicure",
        "description": "Pedicure completo con exfoliación y masaje",
        "duration_minutes": 45,
        "price_cents": 10000,
        "currency": "CLP",
    },
    {
        "name": "Masaje Relajante",
        "description": "Masaje de cuerpo completo",
        "duration_minutes": 60,
        "price_cents": 25000,
        "currency": "CLP",
    },
    {
        "name": "Facial Profundo",
        "description": "Limpieza facial profunda con tratamiento hidratante",
        "duration_minutes": 60,
        "price_cents": 20000,
        "currency": "CLP",
    },
    {
        "name": "Depilación Cejas",
        "description": "Perfilado y depilación de cejas",
        "duration_minutes": 15,
        "price_cents": 5000,
        "currency": "CLP",
    },
    {
        "name": "Tinte de Cabello",
        "description": "Aplicación de tinte completo con tratamiento",
        "duration_minutes": 90,
        "price_cents": 35000,
        "currency": "CLP",
    },
]


async def seed_services() -> int:
    """
    Insert the catalog services that don't exist yet.

    Returns:
        Number of services created
    """
    async with get_async_session() as session:
        result = await session.execute(select(Service.name))
        existing = set(result.scalars().all())

        created = 0
        for service_data in SERVICES:
            if service_data["name"] in existing:
                continue
            session.add(Service(**service_data))
            created += 1

        await session.commit()

    print("✓ Services seed completed:")
    print(f"  - Created: {created} new services")
    print(f"  - Already present: {len(SERVICES) - created}")
    return created


if __name__ == "__main__":
    asyncio.run(seed_services())
