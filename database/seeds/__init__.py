"""
Seed data orchestration module.

Provides seed_all() function to create the schema and execute all seed
scripts in dependency order.
Can be run standalone: python -m database.seeds
"""

import asyncio

from database.connection import init_db
from database.seeds.services import seed_services
from database.seeds.staff import seed_staff


async def seed_all() -> None:
    """
    Execute all seed scripts in dependency order.

    Order:
    1. schema - create tables if missing
    2. staff - independent
    3. services - independent
    """
    print("Starting database seeding...")
    print("-" * 50)

    await init_db()
    await seed_staff()
    await seed_services()

    print("-" * 50)
    print(" Database seeding complete!")
