"""
Menu Seeding

Default catalog inserted on first start (and by scripts/seed_menu.py).
Seeding is idempotent: items are matched by name and existing rows,
including their prices and availability, are never modified.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.models import MenuItem

logger = logging.getLogger(__name__)

DEFAULT_MENU = [
    {"name": "Jollof Rice", "description": "Smoky party jollof with grilled chicken", "price": Decimal("2500.00"), "category": "Main Course"},
    {"name": "Fried Rice", "description": "Vegetable fried rice with chicken", "price": Decimal("2300.00"), "category": "Main Course"},
    {"name": "Pounded Yam & Egusi", "description": "Fresh pounded yam with egusi soup", "price": Decimal("3000.00"), "category": "Main Course"},
    {"name": "Pepper Soup", "description": "Spicy goat or catfish pepper soup", "price": Decimal("1800.00"), "category": "Soup"},
    {"name": "Grilled Chicken", "description": "Quarter chicken, flame grilled", "price": Decimal("3500.00"), "category": "Protein"},
    {"name": "Beef Suya", "description": "Skewered beef with yaji spice", "price": Decimal("2000.00"), "category": "Protein"},
    {"name": "Chapman", "description": "Chilled Chapman cocktail", "price": Decimal("800.00"), "category": "Drinks"},
    {"name": "Zobo", "description": "Hibiscus drink with ginger", "price": Decimal("500.00"), "category": "Drinks"},
    {"name": "Moi Moi", "description": "Steamed bean pudding", "price": Decimal("600.00"), "category": "Sides"},
    {"name": "Plantain", "description": "Fried ripe plantain (dodo)", "price": Decimal("500.00"), "category": "Sides"},
]


async def seed_menu(db: AsyncSession, items: list[dict] = None) -> int:
    """
    Insert catalog items whose names are not present yet.

    Returns:
        Number of items inserted
    """
    items = DEFAULT_MENU if items is None else items

    result = await db.execute(select(MenuItem.name))
    existing = set(result.scalars().all())

    new_items = [MenuItem(**item) for item in items if item["name"] not in existing]
    db.add_all(new_items)
    await db.commit()

    logger.info(f"Menu seeded: {len(new_items)} new, {len(existing)} existing")
    return len(new_items)
