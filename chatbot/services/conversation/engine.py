"""
Conversation Engine

The per-turn state machine. Given the session's current state and the raw
text a device sent, it validates the input, drives the cart, catalog and
ledger, and returns the reply, the next state and - when an order was just
placed - a payment directive for the transport layer.

Dispatch is table driven: TRANSITIONS maps every ConversationState to an
ordered tuple of (guard, handler) pairs and the first guard that accepts
the input wins. Each state ends with a catch-all guard, which is checked
when this module is imported.

The engine holds no state between turns.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.core.config import Settings, get_settings
from chatbot.core.exceptions import InputValidationError, MenuItemNotFoundError
from chatbot.models import ConversationState, PlacedOrder, utcnow
from chatbot.services.cart import CartStore
from chatbot.services.catalog import CatalogReader
from chatbot.services.conversation import messages
from chatbot.services.ledger import OrderLedger

logger = logging.getLogger(__name__)

NUMERIC_PATTERN = re.compile(r"[0-9]+")
SCHEDULE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2}")
SCHEDULE_FORMAT = "%Y-%m-%d %H:%M"

# States whose commands are menu numbers only
NUMERIC_STATES = frozenset({
    ConversationState.MAIN_MENU,
    ConversationState.ORDERING,
    ConversationState.VIEWING_CART,
    ConversationState.VIEWING_HISTORY,
    ConversationState.CHECKOUT_OPTIONS,
})


@dataclass(frozen=True)
class PaymentDirective:
    """Tells the transport layer to start an external payment flow."""
    order_id: int
    amount: Decimal
    requires_payment: bool = True


@dataclass(frozen=True)
class TurnOutcome:
    """Result of one turn."""
    reply: str
    next_state: ConversationState
    payment: Optional[PaymentDirective] = None


@dataclass(frozen=True)
class Turn:
    device_id: str
    text: str
    state: ConversationState


# =============================================================================
# GUARDS
# =============================================================================

Guard = Callable[[str], bool]


def command(value: str) -> Guard:
    def guard(text: str) -> bool:
        return text == value
    guard.__name__ = f"command({value!r})"
    return guard


def numeric(text: str) -> bool:
    return NUMERIC_PATTERN.fullmatch(text) is not None


def schedule_format(text: str) -> bool:
    return SCHEDULE_PATTERN.fullmatch(text) is not None


def anything(text: str) -> bool:
    return True


@dataclass(frozen=True)
class Transition:
    guard: Guard
    handler: Callable[["ConversationEngine", Turn], Awaitable[TurnOutcome]]


# =============================================================================
# ENGINE
# =============================================================================

class ConversationEngine:
    """
    Interprets one inbound message against the current state.

    Args:
        catalog: Menu lookups
        cart: Cart mutations
        ledger: Order placement and history
        settings: Used for the business timezone
        clock: Returns the current aware datetime; injectable for tests
    """

    def __init__(
        self,
        catalog: CatalogReader,
        cart: CartStore,
        ledger: OrderLedger,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.cart = cart
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.clock = clock

    @classmethod
    def for_session(cls, db: AsyncSession, **kwargs) -> "ConversationEngine":
        """Build an engine whose stores share one database session."""
        catalog = CatalogReader(db)
        cart = CartStore(db, catalog)
        ledger = OrderLedger(db, cart)
        return cls(catalog, cart, ledger, **kwargs)

    async def process(
        self,
        device_id: str,
        raw_message: str,
        state: ConversationState,
    ) -> TurnOutcome:
        """Run one turn and return the reply plus the state to persist."""
        turn = Turn(device_id=device_id, text=raw_message.strip(), state=state)

        if state in NUMERIC_STATES and not numeric(turn.text):
            logger.debug(f"Rejected non-numeric input from {device_id} in {state.value}")
            return TurnOutcome(
                messages.with_main_menu(messages.INVALID_NUMBER),
                ConversationState.MAIN_MENU,
            )

        for transition in TRANSITIONS[state]:
            if transition.guard(turn.text):
                outcome = await transition.handler(self, turn)
                break

        logger.info(
            f"Turn {device_id}: {state.value} --[{turn.text}]--> {outcome.next_state.value}"
        )
        return outcome

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    async def back_to_main_menu(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(messages.main_menu_text(), ConversationState.MAIN_MENU)

    async def invalid_main_menu_option(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(
            messages.with_main_menu(messages.INVALID_OPTION),
            ConversationState.MAIN_MENU,
        )

    async def invalid_view_option(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(
            messages.with_main_menu(messages.INVALID_VIEW_OPTION),
            ConversationState.MAIN_MENU,
        )

    async def show_catalog(self, turn: Turn) -> TurnOutcome:
        items = await self.catalog.list_available()
        return TurnOutcome(messages.menu_text(items), ConversationState.ORDERING)

    async def show_cart(self, turn: Turn) -> TurnOutcome:
        lines = await self.cart.get(turn.device_id)
        return TurnOutcome(messages.cart_text(lines), ConversationState.VIEWING_CART)

    async def show_history(self, turn: Turn) -> TurnOutcome:
        orders = await self.ledger.history(turn.device_id)
        return TurnOutcome(messages.history_text(orders), ConversationState.VIEWING_HISTORY)

    async def payment_reminder(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(messages.payment_pending_text(), ConversationState.PAYMENT_PENDING)

    # =========================================================================
    # CART
    # =========================================================================

    async def cancel_cart(self, turn: Turn) -> TurnOutcome:
        await self.cart.clear(turn.device_id)
        return TurnOutcome(
            messages.with_main_menu(messages.ORDER_CANCELLED),
            ConversationState.MAIN_MENU,
        )

    async def add_item(self, turn: Turn) -> TurnOutcome:
        try:
            line = await self.cart.add(turn.device_id, int(turn.text))
        except MenuItemNotFoundError:
            reply = messages.invalid_item_text(await self.catalog.list_available())
        else:
            reply = messages.item_added_text(
                line.menu_item.name,
                await self.catalog.list_available(),
            )
        return TurnOutcome(reply, ConversationState.ORDERING)

    async def invalid_item(self, turn: Turn) -> TurnOutcome:
        items = await self.catalog.list_available()
        return TurnOutcome(messages.invalid_item_text(items), ConversationState.ORDERING)

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    async def begin_checkout(self, turn: Turn) -> TurnOutcome:
        lines = await self.cart.get(turn.device_id)
        if not lines:
            return TurnOutcome(
                messages.with_main_menu(messages.NOTHING_TO_CHECKOUT),
                ConversationState.MAIN_MENU,
            )
        return TurnOutcome(
            messages.cart_with_checkout_prompt(lines),
            ConversationState.CHECKOUT_OPTIONS,
        )

    async def checkout_prompt(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(messages.checkout_prompt(), ConversationState.CHECKOUT_OPTIONS)

    async def invalid_checkout_option(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(messages.INVALID_CHECKOUT_OPTION, ConversationState.CHECKOUT_OPTIONS)

    async def ask_schedule(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(messages.schedule_prompt(), ConversationState.SCHEDULING)

    async def place_now(self, turn: Turn) -> TurnOutcome:
        order = await self.ledger.place(turn.device_id)
        if order is None:
            return self._placement_failed()
        return self._placed(order, messages.order_placed_text(order))

    async def place_scheduled(self, turn: Turn) -> TurnOutcome:
        try:
            scheduled_for = self.parse_schedule(turn.text)
        except InputValidationError as e:
            return TurnOutcome(e.message, ConversationState.SCHEDULING)

        order = await self.ledger.place(turn.device_id, scheduled_for=scheduled_for)
        if order is None:
            return self._placement_failed()
        return self._placed(order, messages.order_scheduled_text(order))

    async def malformed_schedule(self, turn: Turn) -> TurnOutcome:
        return TurnOutcome(messages.INVALID_DATE_FORMAT, ConversationState.SCHEDULING)

    def parse_schedule(self, text: str) -> datetime:
        """
        Read a "YYYY-MM-DD HH:MM" wall time in the business timezone.

        Returns:
            The instant in UTC

        Raises:
            InputValidationError: not a real calendar time, or not strictly
                later than now
        """
        try:
            local = datetime.strptime(text, SCHEDULE_FORMAT)
        except ValueError:
            raise InputValidationError(messages.INVALID_DATE_FORMAT, text=text)

        scheduled = local.replace(tzinfo=self.settings.tz).astimezone(timezone.utc)
        if scheduled <= self.clock():
            raise InputValidationError(messages.PAST_SCHEDULE, text=text)
        return scheduled

    def _placed(self, order: PlacedOrder, reply: str) -> TurnOutcome:
        return TurnOutcome(
            reply,
            ConversationState.PAYMENT_PENDING,
            PaymentDirective(order_id=order.id, amount=order.total_amount),
        )

    def _placement_failed(self) -> TurnOutcome:
        return TurnOutcome(
            messages.with_main_menu(messages.PLACEMENT_FAILED),
            ConversationState.MAIN_MENU,
        )


# =============================================================================
# TRANSITION TABLE
# =============================================================================

S = ConversationState
E = ConversationEngine

TRANSITIONS: dict[ConversationState, tuple[Transition, ...]] = {
    S.MAIN_MENU: (
        Transition(command("1"), E.show_catalog),
        Transition(command("99"), E.begin_checkout),
        Transition(command("98"), E.show_history),
        Transition(command("97"), E.show_cart),
        Transition(command("0"), E.cancel_cart),
        Transition(anything, E.invalid_main_menu_option),
    ),
    S.ORDERING: (
        Transition(command("0"), E.back_to_main_menu),
        Transition(numeric, E.add_item),
        Transition(anything, E.invalid_item),
    ),
    S.VIEWING_CART: (
        Transition(command("0"), E.back_to_main_menu),
        Transition(command("99"), E.checkout_prompt),
        Transition(anything, E.invalid_view_option),
    ),
    S.VIEWING_HISTORY: (
        Transition(command("0"), E.back_to_main_menu),
        Transition(anything, E.invalid_view_option),
    ),
    S.CHECKOUT_OPTIONS: (
        Transition(command("0"), E.back_to_main_menu),
        Transition(command("1"), E.ask_schedule),
        Transition(command("2"), E.place_now),
        Transition(anything, E.invalid_checkout_option),
    ),
    S.SCHEDULING: (
        Transition(command("0"), E.back_to_main_menu),
        Transition(schedule_format, E.place_scheduled),
        Transition(anything, E.malformed_schedule),
    ),
    S.PAYMENT_PENDING: (
        Transition(command("0"), E.back_to_main_menu),
        Transition(anything, E.payment_reminder),
    ),
}


def check_transitions(table: dict) -> None:
    """Every state needs rules, and the last rule must accept any input."""
    missing = [state.value for state in ConversationState if state not in table]
    if missing:
        raise RuntimeError(f"No transitions defined for states: {missing}")
    for state, rules in table.items():
        if not rules or rules[-1].guard is not anything:
            raise RuntimeError(f"State {state.value} has no catch-all transition")


check_transitions(TRANSITIONS)
