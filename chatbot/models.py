"""
SQLAlchemy Database Models

Persistent records behind the chat ordering flow:
- Conversation sessions (one per device)
- Menu catalog
- Cart lines (mutable, pre-checkout)
- Placed orders and their immutable item snapshots

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from chatbot.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ConversationState(str, enum.Enum):
    """Closed set of states a device conversation can be in."""
    MAIN_MENU = "main_menu"
    ORDERING = "ordering"
    VIEWING_CART = "viewing_cart"
    VIEWING_HISTORY = "viewing_history"
    CHECKOUT_OPTIONS = "checkout_options"
    SCHEDULING = "scheduling"
    PAYMENT_PENDING = "payment_pending"


class PaymentStatus(str, enum.Enum):
    """Payment lifecycle: pending -> paid, exactly once."""
    PENDING = "pending"
    PAID = "paid"


class OrderStatus(str, enum.Enum):
    """Fulfilment status recorded at placement."""
    PLACED = "placed"
    SCHEDULED = "scheduled"


class ChatSession(Base):
    """
    One conversation per device.

    The row is the only place conversation state lives between turns.
    """
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(255), nullable=False, unique=True, index=True)
    state = Column(
        Enum(
            ConversationState,
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        default=ConversationState.MAIN_MENU,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_activity = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<ChatSession {self.device_id} - {self.state.value}>"


class MenuItem(Base):
    """Orderable dish. Read-only from the conversation's point of view."""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2, asdecimal=True), nullable=False)
    category = Column(String(100), nullable=False, default="Other")
    available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<MenuItem #{self.id} {self.name} - {self.price}>"


class CartLine(Base):
    """
    A line in a device's cart.

    Unique per (device, item). The price is captured when the line is
    first created and never re-read from the catalog afterwards.
    """
    __tablename__ = "cart_lines"
    __table_args__ = (
        UniqueConstraint("device_id", "menu_item_id", name="uq_cart_lines_device_item"),
        CheckConstraint("quantity >= 1", name="ck_cart_lines_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(
        String(255),
        ForeignKey("sessions.device_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2, asdecimal=True), nullable=False)
    added_at = Column(DateTime(timezone=True), default=utcnow)

    menu_item = relationship(MenuItem, lazy="joined", innerjoin=True)

    @property
    def line_total(self):
        return self.price * self.quantity

    def __repr__(self):
        return f"<CartLine {self.device_id} item={self.menu_item_id} x{self.quantity}>"


class PlacedOrder(Base):
    """
    Append-only ledger entry created from a cart snapshot.

    device_id is not a foreign key; purging an idle session
    must never remove its order history.
    """
    __tablename__ = "placed_orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(255), nullable=False, index=True)
    total_amount = Column(Numeric(10, 2, asdecimal=True), nullable=False)

    # =========================================================================
    # PAYMENT INFO
    # =========================================================================
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=16, values_callable=_enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    payment_reference = Column(String(255), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # =========================================================================
    # FULFILMENT
    # =========================================================================
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(OrderStatus, native_enum=False, length=16, values_callable=_enum_values),
        default=OrderStatus.PLACED,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    items = relationship(
        "OrderItem",
        lazy="selectin",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        back_populates="order",
    )

    def __repr__(self):
        return f"<PlacedOrder #{self.id} - {self.device_id} - {self.payment_status.value}>"


class OrderItem(Base):
    """Denormalized copy of a cart line taken at placement."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("placed_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=True), nullable=False)
    item_name = Column(String(255), nullable=False)

    order = relationship(PlacedOrder, back_populates="items")

    @property
    def line_total(self):
        return self.price * self.quantity

    def __repr__(self):
        return f"<OrderItem order={self.order_id} {self.item_name} x{self.quantity}>"
