"""
Payment Service Factory

Provides a single entry point for obtaining a payment gateway instance.
The factory pattern allows the rest of the application to remain agnostic
about which implementation is being used.

Usage:
    from chatbot.services.payment import get_payment_service

    # Returns MockPaymentService or StripePaymentService based on ENV_MODE
    payment_service = get_payment_service()

    checkout = await payment_service.initialize_checkout(order_id, amount, email)

Environment Switching:
    - ENV_MODE=development → MockPaymentService (no API calls)
    - ENV_MODE=staging → StripePaymentService (test keys)
    - ENV_MODE=production → StripePaymentService (live keys)

Author: Khalil_Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from chatbot.core.config import get_settings
from chatbot.services.payment.base import (
    BasePaymentService,
    CheckoutResult,
    PaymentVerification,
)
from chatbot.services.payment.mock import MockPaymentService
from chatbot.services.payment.stripe import StripePaymentService

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    """
    Get the configured payment service instance.

    The instance is cached so the mock gateway keeps its registry of
    initialized checkouts for the life of the process.

    Returns:
        BasePaymentService: Configured payment service instance

    Raises:
        ValueError: If production mode but Stripe key not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Payment Service: Using MockPaymentService (development mode)")
        return MockPaymentService(
            failure_rate=settings.mock_payment_failure_rate,
            base_url=settings.app_base_url,
            currency=settings.currency,
        )

    logger.info(
        f"Payment Service: Using StripePaymentService "
        f"({settings.env_mode.value} mode)"
    )
    return StripePaymentService()


def reset_payment_service() -> None:
    """
    Clear the cached payment service instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_payment_service.cache_clear()
    logger.debug("Payment service cache cleared")


__all__ = [
    "get_payment_service",
    "reset_payment_service",
    "BasePaymentService",
    "CheckoutResult",
    "PaymentVerification",
    "MockPaymentService",
    "StripePaymentService",
]
