"""
Cart Store

Mutable per-device line items. A line is unique per (device, menu item);
adding an item that is already in the cart increases its quantity and
keeps the price captured when the line was created.
"""

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.core.exceptions import InputValidationError, MenuItemNotFoundError
from chatbot.database import dialect_insert
from chatbot.models import CartLine, utcnow
from chatbot.services.catalog import CatalogReader

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def cart_total(lines: Iterable) -> Decimal:
    """Sum of price x quantity, exact to the cent."""
    total = sum((Decimal(line.price) * line.quantity for line in lines), Decimal("0"))
    return total.quantize(CENT)


class CartStore:
    """Per-device cart backed by the cart_lines table."""

    def __init__(self, db: AsyncSession, catalog: CatalogReader = None):
        self.db = db
        self.catalog = catalog or CatalogReader(db)

    async def add(self, device_id: str, menu_item_id: int, quantity: int = 1) -> CartLine:
        """
        Add an item to the device's cart.

        Raises:
            InputValidationError: quantity below 1
            MenuItemNotFoundError: unknown or unavailable item
        """
        if quantity < 1:
            raise InputValidationError("Quantity must be at least 1", quantity=quantity)

        item = await self.catalog.by_id(menu_item_id)
        if item is None:
            raise MenuItemNotFoundError(menu_item_id)

        # The conflict branch only touches quantity, so the first price sticks.
        stmt = dialect_insert(self.db, CartLine).values(
            device_id=device_id,
            menu_item_id=menu_item_id,
            quantity=quantity,
            price=item.price,
            added_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["device_id", "menu_item_id"],
            set_={"quantity": CartLine.quantity + stmt.excluded.quantity},
        )
        await self.db.execute(stmt)

        line = await self._line(device_id, menu_item_id)
        logger.info(f"Cart {device_id}: {item.name} now x{line.quantity}")
        return line

    async def get(self, device_id: str) -> list[CartLine]:
        """Cart lines with their menu items, in the order they were added."""
        result = await self.db.execute(
            select(CartLine)
            .where(CartLine.device_id == device_id)
            .order_by(CartLine.id)
            .execution_options(populate_existing=True)
        )
        return list(result.unique().scalars().all())

    async def clear(self, device_id: str) -> int:
        """Remove every line for the device. Safe to repeat."""
        result = await self.db.execute(
            delete(CartLine)
            .where(CartLine.device_id == device_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Cart {device_id}: cleared {result.rowcount} lines")
        return result.rowcount

    async def remove(self, device_id: str, line_ids: list[int]) -> int:
        """Delete the given lines of the device's cart; returns rows removed."""
        if not line_ids:
            return 0
        result = await self.db.execute(
            delete(CartLine)
            .where(
                CartLine.device_id == device_id,
                CartLine.id.in_(line_ids),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _line(self, device_id: str, menu_item_id: int) -> CartLine:
        result = await self.db.execute(
            select(CartLine)
            .where(
                CartLine.device_id == device_id,
                CartLine.menu_item_id == menu_item_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one()
