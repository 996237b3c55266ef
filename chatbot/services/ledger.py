"""
Order Ledger

Append-only store of placed orders. Placement converts the device's cart
into an order plus immutable item snapshots and empties the cart, all
inside the caller's unit of work.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.core.exceptions import OrderNotFoundError, StorageError
from chatbot.models import (
    ChatSession,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PlacedOrder,
    utcnow,
)
from chatbot.services.cart import CartStore, cart_total

logger = logging.getLogger(__name__)


class OrderLedger:
    """
    Creates, reads and settles placed orders.

    Usage:
        async with unit_of_work(db):
            order = await OrderLedger(db).place(device_id)
    """

    def __init__(self, db: AsyncSession, cart: CartStore = None):
        self.db = db
        self.cart = cart or CartStore(db)

    async def place(
        self,
        device_id: str,
        scheduled_for: Optional[datetime] = None,
    ) -> Optional[PlacedOrder]:
        """
        Snapshot the cart into a new pending order and clear the cart.

        The device's session row is locked first and the cart is re-read
        under that lock, so of two concurrent placements for one device
        only the first sees any lines. The lines are then claimed by
        deleting exactly the ids that were read; a placement that claims
        nothing lost the race and returns None. That second check is what
        holds on SQLite, where FOR UPDATE is ignored.

        Args:
            device_id: Device whose cart is being checked out
            scheduled_for: Optional future fulfilment time

        Returns:
            The new order, or None when the cart is empty

        Raises:
            StorageError: The cart changed while it was being claimed.
                Driver failures surface from the enclosing unit of work,
                which rolls back the order, its items and the cart
                deletion together.
        """
        await self._lock_device(device_id)

        lines = await self.cart.get(device_id)
        if not lines:
            logger.info(f"Placement skipped for {device_id}: cart is empty")
            return None

        claimed = await self.cart.remove(device_id, [line.id for line in lines])
        if claimed == 0:
            logger.warning(f"Placement skipped for {device_id}: cart already checked out")
            return None
        if claimed != len(lines):
            raise StorageError(
                "Cart changed during placement",
                device_id=device_id,
                expected=len(lines),
                claimed=claimed,
            )

        order = PlacedOrder(
            device_id=device_id,
            total_amount=cart_total(lines),
            payment_status=PaymentStatus.PENDING,
            scheduled_for=scheduled_for,
            status=OrderStatus.SCHEDULED if scheduled_for else OrderStatus.PLACED,
            created_at=utcnow(),
        )
        order.items = [
            OrderItem(
                menu_item_id=line.menu_item_id,
                quantity=line.quantity,
                price=line.price,
                item_name=line.menu_item.name,
            )
            for line in lines
        ]
        self.db.add(order)
        await self.db.flush()

        logger.info(
            f"Order #{order.id} placed for {device_id}: "
            f"{len(order.items)} lines, total {order.total_amount}"
        )
        return order

    async def history(self, device_id: str) -> list[PlacedOrder]:
        """Orders for the device, newest first, with their items."""
        result = await self.db.execute(
            select(PlacedOrder)
            .where(PlacedOrder.device_id == device_id)
            .order_by(PlacedOrder.created_at.desc(), PlacedOrder.id.desc())
        )
        return list(result.scalars().all())

    async def by_id(self, order_id: int) -> PlacedOrder:
        """
        Raises:
            OrderNotFoundError: unknown order id
        """
        result = await self.db.execute(
            select(PlacedOrder).where(PlacedOrder.id == order_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def mark_paid(self, order_id: int, reference: str) -> tuple[PlacedOrder, bool]:
        """
        Settle an order.

        Checks the current status under a row lock before transitioning.
        An order that is already paid is returned untouched, so repeated
        confirmations (verify call plus webhook, gateway retries) have no
        further effect.

        Returns:
            The order, and whether this call settled it

        Raises:
            OrderNotFoundError: unknown order id
        """
        result = await self.db.execute(
            select(PlacedOrder)
            .where(PlacedOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.payment_status == PaymentStatus.PAID:
            if order.payment_reference != reference:
                logger.warning(
                    f"Order #{order_id} already paid with {order.payment_reference}; "
                    f"ignoring confirmation {reference}"
                )
            else:
                logger.debug(f"Order #{order_id} already paid, confirmation ignored")
            return order, False

        order.payment_status = PaymentStatus.PAID
        order.payment_reference = reference
        order.paid_at = utcnow()
        await self.db.flush()

        logger.info(f"Order #{order_id} marked paid ({reference})")
        return order, True

    async def _lock_device(self, device_id: str) -> None:
        # FOR UPDATE is a no-op on SQLite, where the database write lock
        # already serializes writers.
        await self.db.execute(
            select(ChatSession.id)
            .where(ChatSession.device_id == device_id)
            .with_for_update()
        )
