"""
Stripe Payment Service Implementation

Production implementation using the official Stripe Python SDK.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - STRIPE_SECRET_KEY must be set in environment
    - STRIPE_WEBHOOK_SECRET for webhook verification

Security Notes:
    - Never log full card numbers or CVCs
    - Always verify webhook signatures
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import stripe
from stripe import (
    APIConnectionError,
    AuthenticationError,
    CardError,
    InvalidRequestError,
    SignatureVerificationError,
    StripeError,
)

from tableside.core.config import get_settings
from tableside.services.payment.base import (
    INTENT_SUCCEEDED,
    BasePaymentService,
    PaymentResult,
    RefundResult,
    from_minor_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(start_time: datetime) -> float:
    return (datetime.now() - start_time).total_seconds() * 1000


class StripePaymentService(BasePaymentService):
    """
    Production Stripe payment service implementation.

    Configuration:
        Requires STRIPE_SECRET_KEY environment variable.
        Optionally uses STRIPE_WEBHOOK_SECRET for webhook verification.
    """

    def __init__(self):
        """
        Initialize Stripe with API key from settings.

        Raises:
            ValueError: If STRIPE_SECRET_KEY is not configured
        """
        settings = get_settings()

        if not settings.stripe_secret_key:
            raise ValueError(
                "STRIPE_SECRET_KEY is required for staging/production mode. "
                "Set it in your .env file or environment variables."
            )

        stripe.api_key = settings.stripe_secret_key

        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.stripe_currency

        logger.info("StripePaymentService initialized")

    @property
    def provider_name(self) -> str:
        return "stripe"

    def _failure(self, error: StripeError, start_time: datetime) -> PaymentResult:
        """Map SDK exceptions onto a failed PaymentResult."""
        elapsed_ms = _elapsed_ms(start_time)

        if isinstance(error, CardError):
            logger.warning(f"Stripe: Card declined - {error.code}: {error.user_message}")
            return PaymentResult(
                success=False,
                error_message=error.user_message,
                error_code=error.code,
                response_time_ms=elapsed_ms,
            )
        if isinstance(error, InvalidRequestError):
            logger.error(f"Stripe: Invalid request - {error}")
            return PaymentResult(
                success=False,
                error_message=str(error),
                error_code=error.code or "invalid_request",
                response_time_ms=elapsed_ms,
            )
        if isinstance(error, AuthenticationError):
            logger.critical(f"Stripe: Authentication failed - {error}")
            return PaymentResult(
                success=False,
                error_message="Payment service configuration error",
                error_code="authentication_error",
                response_time_ms=elapsed_ms,
            )
        if isinstance(error, APIConnectionError):
            logger.error(f"Stripe: Connection error - {error}")
            return PaymentResult(
                success=False,
                error_message="Payment service temporarily unavailable",
                error_code="connection_error",
                response_time_ms=elapsed_ms,
            )

        logger.error(f"Stripe: Error - {error}")
        return PaymentResult(
            success=False,
            error_message="Payment processing error",
            error_code="stripe_error",
            response_time_ms=elapsed_ms,
        )

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "usd",
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Create a PaymentIntent for client-side confirmation.

        Returns a client_secret that the frontend uses with Stripe.js
        to complete the payment.
        """
        start_time = datetime.now()

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency or self._currency,
                metadata={k: str(v) for k, v in (metadata or {}).items()},
                automatic_payment_methods={"enabled": True},
            )
        except StripeError as e:
            return self._failure(e, start_time)

        logger.debug(f"Stripe: PaymentIntent created - {intent.id}")

        return PaymentResult(
            success=True,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=from_minor_units(intent.amount),
            currency=intent.currency,
            response_time_ms=_elapsed_ms(start_time),
        )

    async def retrieve_payment(self, payment_intent_id: str) -> PaymentResult:
        start_time = datetime.now()

        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except StripeError as e:
            return self._failure(e, start_time)

        last_error = intent.last_payment_error
        succeeded = intent.status == INTENT_SUCCEEDED

        logger.debug(f"Stripe: PaymentIntent {intent.id} status={intent.status}")

        return PaymentResult(
            success=succeeded,
            payment_intent_id=intent.id,
            status=intent.status,
            amount=from_minor_units(intent.amount),
            currency=intent.currency,
            error_code=None if succeeded or not last_error else last_error.code,
            error_message=(
                None if succeeded
                else (last_error.message if last_error else f"Payment status is {intent.status}")
            ),
            response_time_ms=_elapsed_ms(start_time),
            metadata=dict(intent.metadata or {}),
        )

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> RefundResult:
        """
        Refund a payment through Stripe.

        Args:
            payment_intent_id: The PaymentIntent to refund
            amount: Partial refund amount (None = full refund)
            reason: Reason code (duplicate, fraudulent, requested_by_customer)
        """
        refund_params = {"payment_intent": payment_intent_id}
        if amount is not None:
            refund_params["amount"] = to_minor_units(amount)
        if reason:
            refund_params["reason"] = reason

        try:
            refund = stripe.Refund.create(**refund_params)
        except StripeError as e:
            logger.error(f"Stripe: Refund failed - {e}")
            return RefundResult(success=False, status="failed", error_message=str(e))

        logger.info(f"Stripe: Refund processed - {refund.id} - status={refund.status}")

        return RefundResult(
            success=refund.status != "failed",
            refund_id=refund.id,
            amount=from_minor_units(refund.amount),
            status=refund.status,
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> Optional[dict]:
        """
        Verify and parse a Stripe webhook event.

        Returns:
            Parsed event object if valid, None if verification fails
        """
        if not self._webhook_secret:
            logger.warning("Stripe: Webhook secret not configured, skipping verification")
            try:
                return json.loads(payload)
            except json.JSONDecodeError:
                return None

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except SignatureVerificationError as e:
            logger.warning(f"Stripe: Webhook signature invalid - {e}")
            return None
        except ValueError as e:
            logger.warning(f"Stripe: Webhook payload invalid - {e}")
            return None

        logger.debug(f"Stripe: Webhook verified - {event['type']}")
        return event

    async def health_check(self) -> bool:
        """Make a lightweight API call to verify credentials and connectivity."""
        try:
            stripe.Account.retrieve()
        except StripeError as e:
            logger.error(f"Stripe: Health check failed - {e}")
            return False

        logger.debug("Stripe: Health check passed")
        return True
