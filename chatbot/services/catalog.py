"""
Catalog Reader

Read-only access to orderable menu items.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.models import MenuItem

logger = logging.getLogger(__name__)

# Upper bound of the Integer primary key column
MAX_ITEM_ID = 2**31 - 1


class CatalogReader:
    """Looks up available menu items. Never writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_available(self) -> list[MenuItem]:
        """All available items, grouped by category then ordered by id."""
        result = await self.db.execute(
            select(MenuItem)
            .where(MenuItem.available.is_(True))
            .order_by(MenuItem.category, MenuItem.id)
        )
        return list(result.scalars().all())

    async def by_id(self, item_id: int) -> Optional[MenuItem]:
        """Return the item if it exists and is available, else None."""
        if not 0 < item_id <= MAX_ITEM_ID:
            logger.debug(f"Menu item {item_id} out of range")
            return None

        result = await self.db.execute(
            select(MenuItem).where(
                MenuItem.id == item_id,
                MenuItem.available.is_(True),
            )
        )
        item = result.scalar_one_or_none()
        if item is None:
            logger.debug(f"Menu item {item_id} not found or unavailable")
        return item
