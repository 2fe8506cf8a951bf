"""
Seed script for staff_members table.

Populates the database with the demo front-desk and service staff.
Idempotent: existing members (matched by email) are left untouched.

Can be run standalone: python -m database.seeds.staff
"""

import asyncio
from typing import Any

from sqlalchemy import select

from database.connection import AsyncSessionLocal
from database.models import StaffMember

STAFF_DATA: list[dict[str, Any]] = [
    {"name": "Camila Rojas", "email": "camila@example.com", "is_active": True},
    {"name": "Diego Fuentes", "email": "diego@example.com", "is_active": True},
    {"name": "Valentina Soto", "email": "valentina@example.com", "is_active": True},
]


async def seed_staff() -> int:
    """
    Seed the staff_members table.

    Returns:
        Number of staff members created
    """
    created = 0
    async with AsyncSessionLocal() as session:
        async with session.begin():
            for staff_data in STAFF_DATA:
                result = await session.execute(
                    select(StaffMember).where(StaffMember.email == staff_data["email"])
                )
                if result.scalar_one_or_none() is None:
                    session.add(StaffMember(**staff_data))
                    created += 1
                    print(f"✓ Created staff member: {staff_data['name']}")
                else:
                    print(f"⊙ Staff member already exists: {staff_data['name']}")
    return created


if __name__ == "__main__":
    asyncio.run(seed_staff())
