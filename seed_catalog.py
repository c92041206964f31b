"""Script to seed the storefront with an admin account and sample products.

Nothing is overwritten:
- The admin user is created only when no user named ``admin`` exists
- Products are created only when the catalog is empty

The admin password comes from ``STOREFRONT_ADMIN_PASSWORD``; when it is not
set, a random one is generated and logged once.
"""

import asyncio
import logging
import os
import secrets
from decimal import Decimal
from typing import List, Dict, Any

from catalog import CatalogManager
from database import init_db, close, get_pool
from users import UserManager, Role

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ADMIN_USERNAME = "admin"

PRODUCTS_DATA: List[Dict[str, Any]] = [
    {
        "name": "Wireless Headphones",
        "description": "Wireless headphones with noise cancellation and 20-hour battery life.",
        "price": Decimal("129.99"),
        "stock": 45,
        "category": "Electronics"
    },
    {
        "name": "Running Shoes",
        "description": "Lightweight running shoes with comfortable cushioning.",
        "price": Decimal("89.99"),
        "stock": 23,
        "category": "Sports"
    },
    {
        "name": "Fitness Tracker",
        "description": "Track your activity, sleep and heart rate.",
        "price": Decimal("59.99"),
        "stock": 78,
        "category": "Electronics"
    },
    {
        "name": "Gaming Mouse",
        "description": "High-precision gaming mouse with customizable lighting.",
        "price": Decimal("45.99"),
        "stock": 0,
        "category": "Electronics"
    },
    {
        "name": "Casual Sneakers",
        "description": "Casual sneakers for everyday wear.",
        "price": Decimal("79.99"),
        "stock": 32,
        "category": "Clothing"
    },
    {
        "name": "Smartphone",
        "description": "Smartphone with a high-resolution display.",
        "price": Decimal("699.99"),
        "stock": 50,
        "category": "Electronics"
    },
    {
        "name": "Office Chair",
        "description": "Ergonomic office chair with adjustable height and lumbar support.",
        "price": Decimal("199.99"),
        "stock": 30,
        "category": "Furniture"
    },
    {
        "name": "Coffee Maker",
        "description": "Programmable coffee maker with a built-in grinder.",
        "price": Decimal("89.99"),
        "stock": 40,
        "category": "Home Appliances"
    },
    {
        "name": "Yoga Mat",
        "description": "Non-slip yoga mat with extra cushioning.",
        "price": Decimal("29.99"),
        "stock": 100,
        "category": "Sports"
    },
    {
        "name": "Electric Kettle",
        "description": "Fast-boiling electric kettle with temperature control.",
        "price": Decimal("39.99"),
        "stock": 60,
        "category": "Home Appliances"
    },
    {
        "name": "Backpack",
        "description": "Durable backpack with multiple compartments.",
        "price": Decimal("59.99"),
        "stock": 80,
        "category": "Accessories"
    },
    {
        "name": "Desk Lamp",
        "description": "LED desk lamp with adjustable brightness.",
        "price": Decimal("24.99"),
        "stock": 70,
        "category": "Furniture"
    }
]

async def seed_admin(users: UserManager) -> None:
    """Create the admin account if it doesn't exist."""
    if await users.get_user_by_username(ADMIN_USERNAME):
        logger.info("Admin user already exists")
        return

    password = os.environ.get('STOREFRONT_ADMIN_PASSWORD')
    if not password:
        password = secrets.token_urlsafe(12)
        logger.warning(f"STOREFRONT_ADMIN_PASSWORD not set, generated admin password: {password}")

    await users.create_user(ADMIN_USERNAME, password, role=Role.ADMIN)
    logger.info("Created admin user")

async def seed_products(catalog: CatalogManager) -> int:
    """Create the sample products if the catalog is empty."""
    if await catalog.list_products():
        logger.info("Catalog already has products, skipping")
        return 0

    for product in PRODUCTS_DATA:
        created = await catalog.create_product(**product)
        logger.info(f"Created product {created['id']}: {created['name']}")
    return len(PRODUCTS_DATA)

async def main():
    """Seed the database."""
    try:
        await init_db()
        pool = await get_pool()

        await seed_admin(UserManager(pool))
        count = await seed_products(CatalogManager(pool))
        logger.info(f"Seeding complete, {count} products created")
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        raise
    finally:
        await close()

if __name__ == "__main__":
    asyncio.run(main())
