"""
Mock Payment Service Implementation

Simulates a hosted-checkout gateway without making real API calls.
Used in development mode (ENV_MODE=development) to:
    - Walk the full chat -> checkout -> payment flow locally
    - Run the simulation script without incurring costs
    - Develop without internet connectivity

Behavior:
    - Remembers every checkout it initialized (in memory, per process)
    - Optional simulated latency
    - Fails a configurable share of verifications (simulates declines)
    - Accepts unsigned JSON webhooks shaped like
      {"event": "charge.success", "data": {"reference": ..., "amount": ...,
       "metadata": {"order_id": ..., "device_id": ...}}}

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import json
import logging
import random
import time
import uuid
from decimal import Decimal
from typing import Optional

from chatbot.services.payment.base import (
    BasePaymentService,
    CheckoutResult,
    PaymentVerification,
    from_minor_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    Mock implementation of the payment gateway.

    Attributes:
        failure_rate: Probability a verification reports a failed charge (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        base_url: Public URL used to build the fake checkout page link

    Example:
        >>> service = MockPaymentService()
        >>> checkout = await service.initialize_checkout(7, Decimal("2500"), "a@b.co")
        >>> (await service.verify_payment(checkout.reference)).success
        True
    """

    DECLINE_REASONS = [
        ("card_declined", "Your card was declined."),
        ("insufficient_funds", "Your card has insufficient funds."),
        ("expired_card", "Your card has expired."),
    ]

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        base_url: str = "http://localhost:3000",
        currency: str = "ngn",
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self._checkouts: dict[str, dict] = {}

        logger.info(
            f"MockPaymentService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    def _generate_reference(self, order_id: int) -> str:
        """Reference in the ORDER-<id>-<millis>-<rand> shape."""
        return f"ORDER-{order_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"

    async def _simulate_latency(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def initialize_checkout(
        self,
        order_id: int,
        amount: Decimal,
        email: str,
        device_id: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        """Register the checkout and hand back a fake hosted page URL."""
        await self._simulate_latency()

        if amount <= 0:
            return CheckoutResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        reference = self._generate_reference(order_id)
        self._checkouts[reference] = {
            "order_id": order_id,
            "device_id": device_id,
            "amount": to_minor_units(amount),
            "currency": currency or self.currency,
            "email": email,
        }

        logger.info(f"Mock: Checkout initialized - {reference} - order #{order_id}")

        return CheckoutResult(
            success=True,
            authorization_url=f"{self.base_url}/payment-callback.html?reference={reference}",
            access_code=f"ac_mock_{uuid.uuid4().hex[:16]}",
            reference=reference,
        )

    async def verify_payment(self, reference: str) -> PaymentVerification:
        """Settle a known reference unless a simulated decline is drawn."""
        await self._simulate_latency()

        checkout = self._checkouts.get(reference)
        if checkout is None:
            logger.warning(f"Mock: Unknown reference {reference}")
            return PaymentVerification(
                success=False,
                status="not_found",
                reference=reference,
                error_message="Transaction reference not found",
            )

        if self._should_fail():
            error_code, error_message = random.choice(self.DECLINE_REASONS)
            logger.debug(f"Mock: Payment declined - {error_code}")
            return PaymentVerification(
                success=False,
                status="failed",
                reference=reference,
                order_id=checkout["order_id"],
                device_id=checkout["device_id"],
                error_message=error_message,
            )

        logger.info(f"Mock: Payment verified - {reference}")
        return PaymentVerification(
            success=True,
            status="success",
            reference=reference,
            order_id=checkout["order_id"],
            device_id=checkout["device_id"],
            amount=from_minor_units(checkout["amount"]),
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[PaymentVerification]:
        """
        Parse a webhook without cryptographic verification.

        Mock mode trusts the payload, the way a local simulator would.
        """
        try:
            event = json.loads(payload)
            data = event.get("data") or {}
            metadata = data.get("metadata") or {}
        except (json.JSONDecodeError, AttributeError):
            logger.warning("Mock: Invalid webhook payload")
            return None

        event_type = event.get("event", "unknown")
        if event_type != "charge.success":
            return PaymentVerification(success=False, status=event_type)

        try:
            order_id = int(metadata["order_id"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Mock: charge.success webhook without order_id")
            return None

        amount = data.get("amount")
        return PaymentVerification(
            success=True,
            status="success",
            reference=data.get("reference"),
            order_id=order_id,
            device_id=metadata.get("device_id"),
            amount=from_minor_units(amount) if amount is not None else None,
        )

    async def health_check(self) -> bool:
        """
        Mock health check always returns True.
        """
        logger.debug("Mock: Health check passed")
        return True
