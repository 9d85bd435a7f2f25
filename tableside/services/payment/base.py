"""
Payment Service Abstract Base Class

Defines the interface contract for all payment service implementations.
Both MockPaymentService and StripePaymentService implement these methods,
so the order flow behaves the same regardless of which service is active.

Table ordering uses client-side confirmation only:
    1. create_payment_intent()  -> client_secret handed to the browser
    2. customer confirms the card in the browser
    3. retrieve_payment() or a webhook tells the backend the outcome

Design Pattern: Strategy Pattern
    - Allows runtime switching between payment providers
    - Facilitates testing with mock implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

# Provider intent statuses we care about
INTENT_SUCCEEDED = "succeeded"
INTENT_REQUIRES_PAYMENT_METHOD = "requires_payment_method"
INTENT_CANCELED = "canceled"


def to_minor_units(amount: Decimal) -> int:
    """
    Convert a 2-dp amount to cents.

    Args:
        amount: Amount in dollars (e.g., Decimal("27.00"))

    Returns:
        int: Amount in cents (e.g., 2700)
    """
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    """Convert cents back to dollars."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


@dataclass
class PaymentResult:
    """
    Standardized result from a payment provider call.

    Attributes:
        success: Whether the call succeeded (for retrieve: whether the
            intent has succeeded)
        payment_intent_id: Unique identifier for the payment (pi_xxx)
        client_secret: Secret the browser uses to confirm the intent
        status: Provider status of the intent (e.g. "succeeded")
        amount: Amount in dollars
        currency: Currency code (e.g., "usd")
        error_message: Error description if the call failed
        error_code: Machine-readable error code
        response_time_ms: Time taken by the provider
        metadata: Additional data from the payment provider
    """
    success: bool
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "usd"
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0
    metadata: Optional[dict] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "payment_intent_id": self.payment_intent_id,
            "status": self.status,
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "response_time_ms": self.response_time_ms,
            "metadata": self.metadata,
        }


@dataclass
class RefundResult:
    """
    Standardized result from refund processing.

    Attributes:
        success: Whether the refund was successful
        refund_id: Unique identifier for the refund
        amount: Amount refunded in dollars
        status: Refund status (pending, succeeded, failed)
        error_message: Error description if refund failed
    """
    success: bool
    refund_id: Optional[str] = None
    amount: Optional[Decimal] = None
    status: str = "pending"
    error_message: Optional[str] = None


class BasePaymentService(ABC):
    """
    Abstract base class for payment services.

    Example:
        >>> service = get_payment_service()  # Returns Mock or Stripe
        >>> result = await service.create_payment_intent(
        ...     amount=Decimal("27.00"),
        ...     metadata={"order_id": order.id},
        ... )
        >>> if result.success:
        ...     print(result.client_secret)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the payment provider.

        Returns:
            str: Provider name (e.g., "mock", "stripe")
        """

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "usd",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Create a payment intent for client-side confirmation.

        Args:
            amount: Amount in dollars
            currency: Currency code
            metadata: Additional data to attach (order_id, table_id)

        Returns:
            PaymentResult: Contains client_secret for the frontend
        """

    @abstractmethod
    async def retrieve_payment(self, payment_intent_id: str) -> PaymentResult:
        """
        Ask the provider for the current state of an intent.

        ``success`` is True only when the intent has succeeded; otherwise
        ``error_code`` / ``error_message`` describe the last failure.
        """

    @abstractmethod
    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> RefundResult:
        """
        Refund a previous payment.

        Args:
            payment_intent_id: The payment to refund
            amount: Amount to refund (None = full refund)
            reason: Reason for the refund
        """

    @abstractmethod
    async def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> Optional[dict]:
        """
        Verify and parse a webhook from the payment provider.

        Returns:
            dict: Parsed webhook event if valid, None if invalid
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the payment service.

        Returns:
            bool: True if service is reachable and operational
        """
