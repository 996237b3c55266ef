"""
Chat reply texts and presentation helpers.

Everything the customer reads is built here so the state machine only
decides *which* reply to send.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from chatbot.core.config import get_settings
from chatbot.models import CartLine, MenuItem, PlacedOrder

CENT = Decimal("0.01")

INVALID_NUMBER = "⚠️ Invalid input. Please enter a number."
INVALID_OPTION = "⚠️ Invalid option. Please try again."
INVALID_VIEW_OPTION = "⚠️ Invalid option."
INVALID_ITEM = "⚠️ Invalid item number. Please try again."
INVALID_CHECKOUT_OPTION = "⚠️ Invalid option. Please enter 1, 2, or 0."
INVALID_DATE_FORMAT = "⚠️ Invalid format. Use YYYY-MM-DD HH:MM:"
PAST_SCHEDULE = "⚠️ Scheduled time must be in the future. Please try again:"
NOTHING_TO_CHECKOUT = "No order to place. Select 1 to start ordering."
ORDER_CANCELLED = "Order cancelled successfully."
PLACEMENT_FAILED = "Failed to place order. Please try again."
EMPTY_CART = "Your cart is empty. Select 1 from main menu to start ordering."
NO_HISTORY = "You have no order history yet."


def format_currency(amount) -> str:
    """
    Render an amount with the configured glyph and thousands separators.

    Whole amounts drop the fraction: 2500 -> "₦2,500", 2500.5 -> "₦2,500.50".
    """
    value = Decimal(amount).quantize(CENT)
    if value == value.to_integral_value():
        text = f"{value:,.0f}"
    else:
        text = f"{value:,.2f}"
    return f"{get_settings().currency_symbol}{text}"


def format_short_datetime(value: Optional[datetime]) -> str:
    """
    Short local date/time such as "Jan 5, 14:30".

    Naive values are treated as UTC, which is how SQLite hands them back.
    """
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(get_settings().tz)
    return f"{local:%b} {local.day}, {local:%H:%M}"


def main_menu_text() -> str:
    return (
        "Welcome to our Restaurant! 🍽️\n"
        "\n"
        "Please select an option:\n"
        "1️⃣ Place an order\n"
        "9️⃣9️⃣ Checkout order\n"
        "9️⃣8️⃣ See order history\n"
        "9️⃣7️⃣ See current order\n"
        "0️⃣ Cancel order\n"
        "\n"
        "Enter your choice (1, 99, 98, 97, or 0):"
    )


def with_main_menu(notice: str) -> str:
    return f"{notice}\n\n{main_menu_text()}"


def menu_text(items: Iterable[MenuItem]) -> str:
    """Catalog listing with a header whenever the category changes."""
    parts = ["📋 Our Menu:\n"]
    current_category = None

    for item in items:
        if item.category != current_category:
            current_category = item.category
            parts.append(f"\n--- {current_category.upper()} ---")
        parts.append(f"{item.id}. {item.name} - {format_currency(item.price)}")
        if item.description:
            parts.append(f"   {item.description}")
        parts.append("")

    parts.append("\nEnter the item number to add to cart, or 0 to return to main menu:")
    return "\n".join(parts)


def item_added_text(item_name: str, items: Iterable[MenuItem]) -> str:
    return (
        f"✅ {item_name} added to cart!\n\n"
        "Continue ordering or enter 0 for main menu:\n\n"
        f"{menu_text(items)}"
    )


def invalid_item_text(items: Iterable[MenuItem]) -> str:
    return f"{INVALID_ITEM}\n\n{menu_text(items)}"


def cart_text(lines: list[CartLine]) -> str:
    """Current cart with line totals and grand total."""
    if not lines:
        return EMPTY_CART

    parts = ["🛒 Your Current Order:\n"]
    total = Decimal("0")
    for index, line in enumerate(lines, start=1):
        line_total = line.price * line.quantity
        total += line_total
        parts.append(
            f"{index}. {line.menu_item.name} x{line.quantity} - {format_currency(line_total)}"
        )

    parts.append(f"\n💰 Total: {format_currency(total)}\n")
    parts.append("Options:\n99 - Checkout\n0 - Return to main menu")
    return "\n".join(parts)


def checkout_prompt() -> str:
    return "Would you like to:\n1 - Schedule this order\n2 - Pay now\n0 - Cancel"


def cart_with_checkout_prompt(lines: list[CartLine]) -> str:
    return f"{cart_text(lines)}\n\n{checkout_prompt()}"


def schedule_prompt() -> str:
    return "Enter date & time (YYYY-MM-DD HH:MM):\nOr enter 0 to cancel:"


def history_text(orders: list[PlacedOrder]) -> str:
    if not orders:
        return NO_HISTORY

    parts = ["📜 Your Order History:\n"]
    for order in orders:
        parts.append(f"Order #{order.id} - {format_short_datetime(order.created_at)}")
        parts.append(f"Status: {order.payment_status.value.upper()}")
        for item in order.items:
            parts.append(
                f"  • {item.item_name} x{item.quantity} - {format_currency(item.line_total)}"
            )
        parts.append(f"Total: {format_currency(order.total_amount)}")
        if order.scheduled_for:
            parts.append(f"Scheduled for: {format_short_datetime(order.scheduled_for)}")
        parts.append("")

    parts.append("Enter 0 to return to main menu:")
    return "\n".join(parts)


def order_placed_text(order: PlacedOrder) -> str:
    return (
        f"Order placed! Order ID: {order.id}\n"
        f"Total: {format_currency(order.total_amount)}\n\n"
        "Proceed to payment?"
    )


def order_scheduled_text(order: PlacedOrder) -> str:
    return (
        f"✅ Order scheduled for {format_short_datetime(order.scheduled_for)}!\n"
        f"Order ID: {order.id}\n"
        f"Total: {format_currency(order.total_amount)}\n\n"
        "Proceed to payment?"
    )


def payment_pending_text() -> str:
    return (
        "⏳ Your order is awaiting payment.\n"
        "Complete the payment to confirm it, or enter 0 for main menu."
    )
