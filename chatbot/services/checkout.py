"""
Payment Coordinator

Connects the payment gateway to the order ledger and the session store.
It is the only code path that settles orders:

    initialize()      placed order -> hosted checkout URL
    verify()          reference    -> gateway lookup -> confirm()
    handle_webhook()  signed event -> confirm()

confirm() is idempotent. The ledger checks the payment status under a
row lock before transitioning, and the session is only moved back to the
main menu the first time an order is settled, and only if it is still
waiting in payment_pending.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chatbot.core.exceptions import InputValidationError, PaymentError
from chatbot.database import unit_of_work
from chatbot.models import ConversationState, PaymentStatus, PlacedOrder
from chatbot.services.ledger import OrderLedger
from chatbot.services.payment import (
    BasePaymentService,
    CheckoutResult,
    PaymentVerification,
    get_payment_service,
)
from chatbot.services.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class PaymentConfirmation:
    """What a successful confirmation changed."""
    order: PlacedOrder
    newly_paid: bool
    session_reset: bool


class PaymentCoordinator:
    """Drives the external payment flow for placed orders."""

    def __init__(self, db: AsyncSession, payments: Optional[BasePaymentService] = None):
        self.db = db
        self.payments = payments or get_payment_service()
        self.ledger = OrderLedger(db)
        self.sessions = SessionStore(db)

    async def initialize(
        self,
        order_id: int,
        email: str,
        device_id: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Start a hosted checkout for an unpaid order.

        Raises:
            OrderNotFoundError: unknown order
            InputValidationError: order already paid
            PaymentError: gateway refused the request
        """
        order = await self.ledger.by_id(order_id)
        if order.payment_status == PaymentStatus.PAID:
            raise InputValidationError("Order already paid", order_id=order_id)
        if device_id and device_id != order.device_id:
            logger.warning(
                f"Checkout for order #{order_id} requested by {device_id}, "
                f"order belongs to {order.device_id}"
            )

        result = await self.payments.initialize_checkout(
            order_id=order.id,
            amount=order.total_amount,
            email=email,
            device_id=order.device_id,
        )
        if not result.success:
            logger.error(f"Checkout for order #{order_id} failed: {result.error_message}")
            raise PaymentError(
                result.error_message or "Failed to initialize payment",
                error_code=result.error_code,
            )

        logger.info(f"Checkout started for order #{order_id}: {result.reference}")
        return result

    async def verify(
        self,
        reference: str,
    ) -> tuple[PaymentVerification, Optional[PaymentConfirmation]]:
        """Ask the gateway about `reference` and settle the order if paid."""
        verification = await self.payments.verify_payment(reference)
        if not verification.success:
            logger.info(f"Payment {reference} not settled: {verification.status}")
            return verification, None
        return verification, await self.confirm(verification)

    async def handle_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[PaymentConfirmation]:
        """
        Settle an order from a gateway webhook.

        Returns:
            The confirmation, or None for events that settle nothing

        Raises:
            PaymentError: signature or payload rejected by the gateway
        """
        verification = await self.payments.verify_webhook(payload, signature)
        if verification is None:
            raise PaymentError("Invalid webhook signature or payload")
        if not verification.success:
            logger.debug(f"Webhook event ignored: {verification.status}")
            return None
        return await self.confirm(verification)

    async def confirm(self, verification: PaymentVerification) -> PaymentConfirmation:
        """
        Mark the order paid and release the device from payment_pending.

        Raises:
            OrderNotFoundError: the gateway referenced an unknown order
            PaymentError: settled amount differs from the order total
        """
        async with unit_of_work(self.db):
            order = await self.ledger.by_id(verification.order_id)

            if (
                verification.amount is not None
                and verification.amount != order.total_amount
            ):
                logger.error(
                    f"Order #{order.id}: settled {verification.amount}, "
                    f"expected {order.total_amount}"
                )
                raise PaymentError(
                    "Settled amount does not match order total",
                    order_id=order.id,
                )

            if verification.device_id and verification.device_id != order.device_id:
                logger.warning(
                    f"Order #{order.id}: gateway named device {verification.device_id}, "
                    f"releasing owner {order.device_id}"
                )

            order, newly_paid = await self.ledger.mark_paid(order.id, verification.reference)

            session_reset = False
            if newly_paid:
                session_reset = await self.sessions.reset_state(
                    order.device_id,
                    expected=ConversationState.PAYMENT_PENDING,
                    new=ConversationState.MAIN_MENU,
                )

        return PaymentConfirmation(
            order=order,
            newly_paid=newly_paid,
            session_reset=session_reset,
        )
