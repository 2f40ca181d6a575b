"""
Demo Data Seeder

Creates the schema and populates demo staff accounts, tables and a menu.
Safe to run repeatedly: existing rows (matched by username, table number
or menu item name) are left alone.

Run from project root: python scripts/seed.py
"""

import argparse
import asyncio
import os
import sys

from sqlalchemy import select

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from qrdine.core.config import get_settings, setup_logging
from qrdine.database import async_session_maker, engine, init_db
from qrdine.models import MenuItem, RestaurantTable, TableSection, User, UserRole
from qrdine.services.auth import hash_password_async
from qrdine.services.qrcode import get_qr_service, table_menu_url

DEMO_PASSWORD = "password123"

STAFF = [
    # username, role, superadmin
    ("owner", UserRole.SUPERADMIN, True),
    ("admin", UserRole.ADMIN, False),
    ("manager", UserRole.MANAGER, False),
    ("chef", UserRole.KITCHEN, False),
    ("waiter1", UserRole.WAITER, False),
    ("waiter2", UserRole.WAITER, False),
    ("cashier", UserRole.CASHIER, False),
]

MENU = [
    # name, category, price, vegetarian, prep minutes
    ("Paneer Tikka", "Starters", 220.0, True, 15),
    ("Chicken 65", "Starters", 260.0, False, 15),
    ("Veg Spring Roll", "Starters", 180.0, True, 10),
    ("Butter Chicken", "Main Course", 340.0, False, 20),
    ("Dal Makhani", "Main Course", 240.0, True, 20),
    ("Veg Biryani", "Main Course", 260.0, True, 25),
    ("Garlic Naan", "Breads", 60.0, True, 5),
    ("Tandoori Roti", "Breads", 30.0, True, 5),
    ("Gulab Jamun", "Desserts", 90.0, True, 5),
    ("Masala Chai", "Beverages", 40.0, True, 5),
    ("Fresh Lime Soda", "Beverages", 70.0, True, 5),
]

SECTIONS = [TableSection.INDOOR, TableSection.INDOOR, TableSection.OUTDOOR, TableSection.BALCONY]


async def seed(num_tables: int) -> None:
    settings = get_settings()
    qr_service = get_qr_service()
    await init_db()

    async with async_session_maker() as session:
        created_users = 0
        for username, role, is_super_admin in STAFF:
            exists = await session.execute(select(User.id).where(User.username == username))
            if exists.first() is not None:
                continue
            session.add(User(
                username=username,
                email=f"{username}@qrdine.local",
                password_hash=await hash_password_async(DEMO_PASSWORD),
                role=role,
                is_super_admin=is_super_admin,
            ))
            created_users += 1

        created_tables = 0
        for n in range(1, num_tables + 1):
            number = str(n)
            exists = await session.execute(
                select(RestaurantTable.id).where(RestaurantTable.table_number == number)
            )
            if exists.first() is not None:
                continue
            qr = await qr_service.generate(table_menu_url(settings.frontend_url, number))
            session.add(RestaurantTable(
                table_number=number,
                capacity=2 if n % 3 == 0 else 4,
                section=SECTIONS[n % len(SECTIONS)],
                qr_code=qr.payload if qr.success else None,
            ))
            created_tables += 1

        created_items = 0
        for name, category, price, vegetarian, prep in MENU:
            exists = await session.execute(select(MenuItem.id).where(MenuItem.name == name))
            if exists.first() is not None:
                continue
            session.add(MenuItem(
                name=name,
                description=f"House {name.lower()}",
                category=category,
                price=price,
                is_vegetarian=vegetarian,
                preparation_time=prep,
            ))
            created_items += 1

        await session.commit()

    await engine.dispose()

    print("=" * 60)
    print(f"Seeded {settings.restaurant_name}")
    print(f"   Users: {created_users} created (password: {DEMO_PASSWORD})")
    print(f"   Tables: {created_tables} created")
    print(f"   Menu items: {created_items} created")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--tables", type=int, default=12, help="Number of tables")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(seed(args.tables))
