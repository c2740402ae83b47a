"""Stripe integration for booking refunds.

Uses the v8+ ``StripeClient`` with credentials read from SSM Parameter
Store. Only refund creation and webhook verification are needed here;
payment collection happens outside the engine.
"""

import hashlib
import os
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from quote_booking.utils.logging import get_logger

from .ssm_service import SSMServiceError, get_ssm_service, parameter_name

logger = get_logger(__name__)


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


class StripeService:
    """Stripe refund operations.

    Usage:
        stripe_svc = get_stripe_service()
        refund = stripe_svc.create_refund(
            payment_intent_id="pi_3ABC",
            amount_cents=15000,
            booking_id="BKG-1A2B3C4D5E6F",
            refund_id="RFD-6F5E4D3C2B1A",
        )
    """

    def __init__(self, environment: str | None = None) -> None:
        """Initialize Stripe service with credentials from SSM.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
        """
        self._environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self._ssm = get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _parameter_path(self, key: str) -> str:
        return parameter_name(self._environment, "stripe", key)

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeServiceError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_parameter(self._parameter_path("secret_key"))
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(secret_key)
            logger.info("Stripe client initialized for environment: %s", self._environment)
        return self._client

    def _get_webhook_secret(self) -> str:
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_parameter(
                    self._parameter_path("webhook_secret")
                )
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount_cents: int,
        booking_id: str,
        refund_id: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Create a refund for a booking's payment.

        The internal refund ID is the idempotency key, so resubmitting the
        same refund record never refunds twice.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx).
            amount_cents: Refund amount in cents.
            booking_id: Cancelled booking, stored in refund metadata.
            refund_id: Internal refund ID, stored in refund metadata.
            reason: Cancellation reason (for records).

        Returns:
            Dict with refund details:
                - refund_id: Stripe refund ID
                - amount: Refunded amount in cents
                - status: Stripe refund status

        Raises:
            StripeServiceError: If refund creation fails.
        """
        client = self._get_client()

        metadata = {"booking_id": booking_id, "refund_id": refund_id}
        if reason:
            metadata["reason"] = reason[:500]
        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "amount": amount_cents,
            "metadata": metadata,
        }

        try:
            logger.info(
                "Creating refund %s for PaymentIntent %s, amount %d cents",
                refund_id,
                payment_intent_id,
                amount_cents,
            )
            refund = client.refunds.create(
                params=params,  # type: ignore[arg-type]
                options={"idempotency_key": f"refund_{refund_id}"},
            )
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error(
                "Stripe refund creation failed: %s (code: %s)",
                str(e),
                error_code,
            )
            raise StripeServiceError(
                f"Failed to create refund: {e}",
                stripe_error_code=error_code,
            ) from e

        logger.info("Refund created: %s for booking %s", refund.id, booking_id)
        return {
            "refund_id": refund.id,
            "amount": refund.amount,
            "status": refund.status,
        }

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed Stripe event dictionary.

        Raises:
            StripeServiceError: If the signature is invalid.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise StripeServiceError("Invalid webhook signature") from e

        logger.info("Webhook signature verified for event: %s", event["id"])
        return dict(event)

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """SHA-256 hex digest of a webhook payload."""
        return hashlib.sha256(payload).hexdigest()


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance."""
    return StripeService()
