"""
Stripe Payment Service Implementation

Production implementation using the official Stripe Python SDK and
Stripe Checkout (hosted payment page).
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - STRIPE_SECRET_KEY must be set in environment
    - STRIPE_WEBHOOK_SECRET for webhook verification

Security Notes:
    - Always verify webhook signatures
    - Order and device ids travel in Checkout Session metadata

Author: Khalil_Bannouri
Version: 1.0.0
"""

import logging
from decimal import Decimal
from typing import Optional

import stripe

from chatbot.core.config import get_settings
from chatbot.services.payment.base import (
    BasePaymentService,
    CheckoutResult,
    PaymentVerification,
    from_minor_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)


class StripePaymentService(BasePaymentService):
    """
    Production Stripe payment service implementation.

    One Checkout Session is created per order. Its id is the reference
    the rest of the system uses for verification.

    Example:
        >>> service = StripePaymentService()
        >>> checkout = await service.initialize_checkout(
        ...     order_id=42, amount=Decimal("7300.00"), email="customer@example.com"
        ... )
        >>> checkout.authorization_url
        'https://checkout.stripe.com/c/pay/cs_test_...'
    """

    COMPLETED_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")

    def __init__(self):
        """
        Initialize Stripe with API key from settings.

        Raises:
            ValueError: If STRIPE_SECRET_KEY is not configured
        """
        settings = get_settings()

        if not settings.stripe_secret_key:
            raise ValueError(
                "STRIPE_SECRET_KEY is required for production mode. "
                "Set it in your .env file or environment variables."
            )

        stripe.api_key = settings.stripe_secret_key

        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.currency
        self._base_url = settings.app_base_url.rstrip("/")

        logger.info("StripePaymentService initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "stripe"

    async def initialize_checkout(
        self,
        order_id: int,
        amount: Decimal,
        email: str,
        device_id: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        """Create a Checkout Session for the full order total."""
        logger.info(f"Stripe: Creating checkout for order #{order_id} ({amount})")

        if amount <= 0:
            return CheckoutResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                customer_email=email,
                client_reference_id=str(order_id),
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": currency or self._currency,
                        "unit_amount": to_minor_units(amount),
                        "product_data": {"name": f"Order #{order_id}"},
                    },
                }],
                metadata={
                    "order_id": str(order_id),
                    "device_id": device_id or "",
                },
                success_url=(
                    f"{self._base_url}/payment-callback.html?reference={{CHECKOUT_SESSION_ID}}"
                ),
                cancel_url=f"{self._base_url}/",
            )

        except stripe.InvalidRequestError as e:
            logger.error(f"Stripe: Invalid request - {e}")
            return CheckoutResult(
                success=False,
                error_message=str(e),
                error_code="invalid_request",
            )

        except stripe.AuthenticationError as e:
            logger.critical(f"Stripe: Authentication failed - {e}")
            return CheckoutResult(
                success=False,
                error_message="Payment service configuration error",
                error_code="authentication_error",
            )

        except stripe.APIConnectionError as e:
            logger.error(f"Stripe: Connection error - {e}")
            return CheckoutResult(
                success=False,
                error_message="Payment service temporarily unavailable",
                error_code="connection_error",
            )

        except stripe.StripeError as e:
            logger.error(f"Stripe: Error - {e}")
            return CheckoutResult(
                success=False,
                error_message="Payment processing error",
                error_code="stripe_error",
            )

        logger.info(f"Stripe: Checkout Session created - {session.id}")

        return CheckoutResult(
            success=True,
            authorization_url=session.url,
            access_code=session.id,
            reference=session.id,
        )

    def _to_verification(self, session) -> PaymentVerification:
        metadata = session.get("metadata") or {}
        order_id = metadata.get("order_id")
        amount_total = session.get("amount_total")
        paid = session.get("payment_status") == "paid"

        return PaymentVerification(
            success=paid and order_id is not None,
            status=session.get("payment_status") or "unknown",
            reference=session.get("id"),
            order_id=int(order_id) if order_id else None,
            device_id=metadata.get("device_id") or None,
            amount=from_minor_units(amount_total) if amount_total is not None else None,
        )

    async def verify_payment(self, reference: str) -> PaymentVerification:
        """Retrieve the Checkout Session and report whether it is paid."""
        try:
            session = stripe.checkout.Session.retrieve(reference)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe: Unknown checkout session {reference} - {e}")
            return PaymentVerification(
                success=False,
                status="not_found",
                reference=reference,
                error_message="Transaction reference not found",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Verification failed - {e}")
            return PaymentVerification(
                success=False,
                status="error",
                reference=reference,
                error_message="Payment service temporarily unavailable",
            )

        verification = self._to_verification(session)
        logger.info(f"Stripe: {reference} payment_status={verification.status}")
        return verification

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[PaymentVerification]:
        """
        Verify and parse a Stripe webhook event.

        SECURITY: Events are only trusted after signature verification.
        """
        if not self._webhook_secret:
            logger.error("Stripe: Webhook secret not configured, rejecting event")
            return None

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe: Webhook signature invalid - {e}")
            return None
        except ValueError as e:
            logger.warning(f"Stripe: Webhook payload invalid - {e}")
            return None

        logger.debug(f"Stripe: Webhook verified - {event['type']}")

        if event["type"] not in self.COMPLETED_EVENTS:
            return PaymentVerification(success=False, status=event["type"])

        return self._to_verification(event["data"]["object"])

    async def health_check(self) -> bool:
        """
        Verify Stripe API connectivity.

        Makes a lightweight API call to verify credentials and connectivity.
        """
        try:
            stripe.Account.retrieve()
            logger.debug("Stripe: Health check passed")
            return True

        except stripe.StripeError as e:
            logger.error(f"Stripe: Health check failed - {e}")
            return False
