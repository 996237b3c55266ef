"""
Payment Service Abstract Base Class

Defines the interface contract for all payment gateway implementations.
Both MockPaymentService and StripePaymentService must implement these
methods, so checkout behaves identically whichever one is active.

Flow:
    1. initialize_checkout() - returns a hosted checkout URL + reference
    2. the customer pays on the gateway's page
    3. verify_payment(reference) or a signed webhook reports the outcome

Design Pattern: Strategy Pattern
    - Allows runtime switching between payment providers
    - Facilitates testing with mock implementations

Author: Khalil_Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class CheckoutResult:
    """
    Standardized result from starting a hosted checkout.

    Attributes:
        success: Whether the gateway accepted the request
        authorization_url: Page the customer is redirected to
        access_code: Gateway-specific token for embedded checkouts
        reference: Identifier later passed to verify_payment()
        error_message: Error description if initialization failed
        error_code: Machine-readable error code
    """
    success: bool
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    reference: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class PaymentVerification:
    """
    Standardized outcome of a verification call or webhook event.

    Attributes:
        success: True only when the charge has settled
        status: Gateway status string (e.g. "paid", "open", "failed")
        reference: Gateway reference that identifies the charge
        order_id: Order the charge belongs to (from checkout metadata)
        device_id: Device that placed the order, when known
        amount: Amount charged in major currency units
        error_message: Error description if verification failed
    """
    success: bool
    status: str = "unknown"
    reference: Optional[str] = None
    order_id: Optional[int] = None
    device_id: Optional[str] = None
    amount: Optional[Decimal] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "status": self.status,
            "reference": self.reference,
            "order_id": self.order_id,
            "device_id": self.device_id,
            "amount": str(self.amount) if self.amount is not None else None,
            "error_message": self.error_message,
        }


def to_minor_units(amount: Decimal) -> int:
    """Gateways take the smallest currency unit (kobo, cents)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def from_minor_units(value: int) -> Decimal:
    return (Decimal(value) / 100).quantize(Decimal("0.01"))


class BasePaymentService(ABC):
    """
    Abstract base class for payment gateways.

    Implementations never touch the database; confirming an order is the
    PaymentCoordinator's job once a verification reports success.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the payment provider.

        Returns:
            str: Provider name (e.g., "mock", "stripe")
        """
        pass

    @abstractmethod
    async def initialize_checkout(
        self,
        order_id: int,
        amount: Decimal,
        email: str,
        device_id: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Start a hosted checkout for a placed order.

        Args:
            order_id: Order being paid, stored in gateway metadata
            amount: Order total in major units (e.g., 2500.00)
            email: Customer email for the receipt
            device_id: Device to return to main menu after payment
            currency: Three-letter currency code (default from settings)

        Returns:
            CheckoutResult: Standardized result object
        """
        pass

    @abstractmethod
    async def verify_payment(self, reference: str) -> PaymentVerification:
        """
        Ask the gateway whether the charge behind `reference` has settled.

        Args:
            reference: Value returned by initialize_checkout()

        Returns:
            PaymentVerification: success=True only for settled charges
        """
        pass

    @abstractmethod
    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[PaymentVerification]:
        """
        Verify and parse a webhook from the payment provider.

        Args:
            payload: Raw request body bytes
            signature: Signature header from the request

        Returns:
            PaymentVerification for a valid event (success=False for event
            types that do not settle an order), None if the signature or
            payload is invalid
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the payment service.

        Returns:
            bool: True if service is reachable and operational
        """
        pass
