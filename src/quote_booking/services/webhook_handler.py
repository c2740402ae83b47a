"""Stripe webhook processing for refund outcomes.

Stripe reports asynchronous refund progress through ``refund.updated``
and ``refund.failed`` events. Each event ID is logged once in the
processed-events table; redelivered events are acknowledged without
being applied again.
"""

import json
from typing import Any

from quote_booking.models import (
    BookingEngineError,
    ProcessorWebhookEvent,
    RefundProcessingStatus,
)
from quote_booking.utils.logging import correlation_scope, get_logger, log_processor_event

from .clock import Clock, SystemClock
from .dynamodb import DynamoDBService, model_to_item
from .refund_dispatch import STRIPE_REFUND_STATUSES, RefundDispatcher
from .stripe_service import StripeService, get_stripe_service

logger = get_logger(__name__)

WEBHOOK_ACTOR = "stripe-webhook"
REFUND_EVENT_TYPES = frozenset({"refund.updated", "refund.failed"})


class RefundWebhookHandler:
    """Applies Stripe refund events to the refund ledger.

    Returns ``(processing_result, error_message)`` tuples, where the result
    is one of success, duplicate, skipped or error.
    """

    WEBHOOK_EVENTS_TABLE = "processor-webhook-events"

    def __init__(
        self,
        db: DynamoDBService,
        dispatcher: RefundDispatcher,
        stripe_service: StripeService | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self._stripe = stripe_service
        self.clock = clock or SystemClock()

    @property
    def stripe(self) -> StripeService:
        if self._stripe is None:
            self._stripe = get_stripe_service()
        return self._stripe

    def is_event_already_processed(self, event_id: str) -> bool:
        return self.db.get_item(self.WEBHOOK_EVENTS_TABLE, {"event_id": event_id}) is not None

    def log_event(
        self,
        event_id: str,
        event_type: str,
        payload_hash: str,
        *,
        booking_id: str | None,
        refund_id: str | None,
        processing_result: str,
        error_message: str | None = None,
    ) -> None:
        """Log a webhook event for idempotency and audit trail.

        Args:
            event_id: Stripe event ID
            event_type: Event type (refund.updated, refund.failed)
            payload_hash: SHA-256 hash of payload
            booking_id: Booking from refund metadata (if any)
            refund_id: Internal refund ID from refund metadata (if any)
            processing_result: Result (success, skipped, error)
            error_message: Error message if processing failed
        """
        event = ProcessorWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            processed_at=self.clock.now(),
            payload_hash=payload_hash,
            booking_id=booking_id,
            refund_id=refund_id,
            processing_result=processing_result,
            error_message=error_message,
        )
        self.db.put_item(self.WEBHOOK_EVENTS_TABLE, model_to_item(event))
        log_processor_event(
            logger,
            event_type,
            event_id,
            booking_id=booking_id,
            refund_id=refund_id,
            result=processing_result,
            error=error_message,
        )

    def handle_webhook(self, payload: bytes, signature: str) -> tuple[str, str | None]:
        """Verify a raw webhook delivery and process it.

        Raises:
            StripeServiceError: If the signature is invalid.
        """
        event = self.stripe.verify_webhook_signature(payload, signature)
        return self.handle_event(event, StripeService.compute_payload_hash(payload))

    def handle_event(
        self, event: dict[str, Any], payload_hash: str | None = None
    ) -> tuple[str, str | None]:
        """Process a parsed Stripe event.

        Args:
            event: Parsed Stripe webhook event
            payload_hash: Hash of the raw payload, derived from the event if omitted

        Returns:
            Tuple of (processing_result, error_message)
        """
        event_id = event.get("id", "")
        event_type = event.get("type", "")

        with correlation_scope(event_id or None):
            return self._handle_event(event, event_id, event_type, payload_hash)

    def _handle_event(
        self,
        event: dict[str, Any],
        event_id: str,
        event_type: str,
        payload_hash: str | None,
    ) -> tuple[str, str | None]:
        if payload_hash is None:
            payload_hash = StripeService.compute_payload_hash(
                json.dumps(event, sort_keys=True).encode()
            )

        if self.is_event_already_processed(event_id):
            log_processor_event(logger, event_type, event_id, result="duplicate")
            return "duplicate", None

        if event_type not in REFUND_EVENT_TYPES:
            log_processor_event(logger, event_type, event_id, result="skipped")
            return "skipped", f"Unhandled event type {event_type}"

        return self.process_refund_event(event, payload_hash)

    def process_refund_event(
        self, event: dict[str, Any], payload_hash: str
    ) -> tuple[str, str | None]:
        """Apply a refund.updated or refund.failed event.

        Returns:
            Tuple of (processing_result, error_message)
        """
        event_id = event.get("id", "")
        event_type = event.get("type", "")
        refund = event.get("data", {}).get("object", {})
        metadata = refund.get("metadata") or {}

        booking_id = metadata.get("booking_id")
        refund_id = metadata.get("refund_id")
        processor_reference = refund.get("id")
        stripe_status = refund.get("status")

        def finish(result: str, error: str | None = None) -> tuple[str, str | None]:
            self.log_event(
                event_id,
                event_type,
                payload_hash,
                booking_id=booking_id,
                refund_id=refund_id,
                processing_result=result,
                error_message=error,
            )
            return result, error

        if not booking_id:
            return finish("error", "Missing booking_id in refund metadata")

        if event_type == "refund.failed":
            status: RefundProcessingStatus | None = RefundProcessingStatus.FAILED
        else:
            status = STRIPE_REFUND_STATUSES.get(str(stripe_status))
        if status is None:
            return finish("skipped", f"Refund status is '{stripe_status}'")

        failure_reason = refund.get("failure_reason")
        if status == RefundProcessingStatus.FAILED and not failure_reason:
            failure_reason = "failed"

        try:
            record = self.dispatcher.record_outcome(
                booking_id,
                status,
                processor_reference=processor_reference,
                failure_reason=failure_reason,
                actor_id=WEBHOOK_ACTOR,
            )
        except BookingEngineError as e:
            return finish("error", f"{e.code.name}: {e.message}")

        logger.info(
            "Refund for booking %s is now %s via webhook",
            booking_id,
            record.processing_status.value,
        )
        return finish("success")
