"""
Mock Payment Service Implementation

Simulates Stripe-like payment intents without making real API calls.
Used in development mode (ENV_MODE=development) and in tests.

Behavior:
    - Simulates response times (configurable, 0 in tests)
    - Decides the outcome of an intent when it is first retrieved, failing
      ``failure_rate`` of them with a realistic decline code
    - Generates Stripe-like IDs (pi_mock_xxx, re_mock_xxx)
    - Remembers intents so retrieve/refund are consistent
"""

import asyncio
import json
import logging
import random
import uuid
from decimal import Decimal
from typing import Optional

from tableside.services.payment.base import (
    INTENT_REQUIRES_PAYMENT_METHOD,
    INTENT_SUCCEEDED,
    BasePaymentService,
    PaymentResult,
    RefundResult,
)

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    Mock implementation of the payment service.

    Attributes:
        failure_rate: Probability of a simulated decline (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> service = MockPaymentService(failure_rate=0.0, max_latency=0)
        >>> intent = await service.create_payment_intent(Decimal("27.00"))
        >>> (await service.retrieve_payment(intent.payment_intent_id)).success
        True
    """

    # Simulated failure reasons (mimics real Stripe decline codes)
    DECLINE_REASONS = [
        ("card_declined", "Your card was declined."),
        ("insufficient_funds", "Your card has insufficient funds."),
        ("expired_card", "Your card has expired."),
        ("incorrect_cvc", "Your card's security code is incorrect."),
        ("processing_error", "An error occurred while processing your card."),
    ]

    def __init__(
        self,
        failure_rate: float = 0.10,
        min_latency: float = 0.2,
        max_latency: float = 0.8,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._intents: dict[str, dict] = {}

        logger.info(
            f"MockPaymentService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    def _generate_payment_intent_id(self) -> str:
        return f"pi_mock_{uuid.uuid4().hex[:24]}"

    def _generate_refund_id(self) -> str:
        return f"re_mock_{uuid.uuid4().hex[:24]}"

    async def _simulate_latency(self) -> float:
        """Sleep for a random latency; returns it in milliseconds."""
        latency = random.uniform(self.min_latency, self.max_latency)
        if latency > 0:
            await asyncio.sleep(latency)
        return latency * 1000

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    def _get_random_decline(self) -> tuple[str, str]:
        return random.choice(self.DECLINE_REASONS)

    def set_outcome(
        self,
        payment_intent_id: str,
        succeeded: bool,
        error_code: str = "card_declined",
    ) -> None:
        """Force the outcome of an intent (used by tests and the simulator)."""
        intent = self._intents[payment_intent_id]
        if succeeded:
            intent.update(status=INTENT_SUCCEEDED, error_code=None, error_message=None)
        else:
            message = dict(self.DECLINE_REASONS).get(error_code, "Your card was declined.")
            intent.update(
                status=INTENT_REQUIRES_PAYMENT_METHOD,
                error_code=error_code,
                error_message=message,
            )

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "usd",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Simulate creating a payment intent.

        The mock client_secret won't work with Stripe.js.
        """
        latency_ms = await self._simulate_latency()

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
                response_time_ms=latency_ms,
            )

        payment_intent_id = self._generate_payment_intent_id()
        self._intents[payment_intent_id] = {
            "amount": amount,
            "currency": currency,
            "status": None,
            "refunded": False,
            "metadata": dict(metadata or {}),
        }

        logger.debug(f"Mock: Created payment intent {payment_intent_id} - ${amount:.2f}")

        return PaymentResult(
            success=True,
            payment_intent_id=payment_intent_id,
            client_secret=f"{payment_intent_id}_secret_mock",
            status="requires_confirmation",
            amount=amount,
            currency=currency,
            response_time_ms=latency_ms,
            metadata={"mock": True, **(metadata or {})},
        )

    async def retrieve_payment(self, payment_intent_id: str) -> PaymentResult:
        """
        Simulate the customer confirming the intent in the browser.

        The outcome is drawn once and remembered.
        """
        latency_ms = await self._simulate_latency()

        intent = self._intents.get(payment_intent_id)
        if intent is None:
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                error_message=f"No such payment_intent: '{payment_intent_id}'",
                error_code="resource_missing",
                response_time_ms=latency_ms,
            )

        if intent["status"] is None:
            if self._should_fail():
                error_code, error_message = self._get_random_decline()
                intent.update(
                    status=INTENT_REQUIRES_PAYMENT_METHOD,
                    error_code=error_code,
                    error_message=error_message,
                )
                logger.debug(f"Mock: Payment declined - {error_code}")
            else:
                intent.update(status=INTENT_SUCCEEDED, error_code=None, error_message=None)
                logger.info(f"Mock: Payment successful - {payment_intent_id}")

        return PaymentResult(
            success=intent["status"] == INTENT_SUCCEEDED,
            payment_intent_id=payment_intent_id,
            status=intent["status"],
            amount=intent["amount"],
            currency=intent["currency"],
            error_code=intent.get("error_code"),
            error_message=intent.get("error_message"),
            response_time_ms=latency_ms,
            metadata=intent["metadata"],
        )

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> RefundResult:
        await self._simulate_latency()

        intent = self._intents.get(payment_intent_id)
        if intent is None or intent["status"] != INTENT_SUCCEEDED:
            return RefundResult(
                success=False,
                status="failed",
                error_message="Payment has not succeeded and cannot be refunded",
            )
        if intent["refunded"]:
            return RefundResult(
                success=False,
                status="failed",
                error_message="Payment has already been refunded",
            )

        intent["refunded"] = True
        refund_id = self._generate_refund_id()
        logger.info(f"Mock: Refund processed - {refund_id}")

        return RefundResult(
            success=True,
            refund_id=refund_id,
            amount=amount if amount is not None else intent["amount"],
            status="succeeded",
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> Optional[dict]:
        """Mock mode parses the payload without cryptographic verification."""
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Mock: Invalid webhook payload")
            return None

    async def health_check(self) -> bool:
        logger.debug("Mock: Health check passed")
        return True
