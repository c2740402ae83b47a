"""Hand-off of committed refund records to the payment processor.

The processor is only ever called after the cancellation transaction has
committed. Its answer moves the record along the processing state
machine; webhook callbacks later settle refunds Stripe reports as pending.
"""

from typing import Protocol

from quote_booking.models import (
    BookingEngineError,
    ErrorCode,
    RefundProcessingStatus,
    RefundRecord,
)
from quote_booking.utils.logging import get_logger, log_refund_operation

from .booking_store import BookingStore
from .refund_ledger import RefundLedger
from .stripe_service import StripeService, StripeServiceError, get_stripe_service

logger = get_logger(__name__)

DISPATCHER_ACTOR = "refund-dispatcher"

# Stripe refund.status -> processing status
STRIPE_REFUND_STATUSES: dict[str, RefundProcessingStatus] = {
    "pending": RefundProcessingStatus.PROCESSING,
    "requires_action": RefundProcessingStatus.PROCESSING,
    "succeeded": RefundProcessingStatus.COMPLETED,
    "failed": RefundProcessingStatus.FAILED,
    "canceled": RefundProcessingStatus.CANCELLED,
}


class RefundProcessorError(Exception):
    """Raised when the processor rejects or cannot take a refund."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class RefundProcessor(Protocol):
    """Anything that can pay a refund back against a booking's payment."""

    def request_refund(
        self, record: RefundRecord, payment_reference: str
    ) -> tuple[str, RefundProcessingStatus]:
        """Submit a refund.

        Returns:
            Tuple of (processor refund ID, resulting processing status)

        Raises:
            RefundProcessorError: If the refund was not accepted.
        """
        ...


class StripeRefundProcessor:
    """RefundProcessor backed by Stripe refunds on the booking's PaymentIntent."""

    def __init__(self, stripe_service: StripeService | None = None) -> None:
        self._stripe = stripe_service

    @property
    def stripe(self) -> StripeService:
        if self._stripe is None:
            self._stripe = get_stripe_service()
        return self._stripe

    def request_refund(
        self, record: RefundRecord, payment_reference: str
    ) -> tuple[str, RefundProcessingStatus]:
        try:
            result = self.stripe.create_refund(
                payment_intent_id=payment_reference,
                amount_cents=record.refund_amount,
                booking_id=record.booking_id,
                refund_id=record.refund_id,
                reason=record.reason,
            )
        except StripeServiceError as e:
            raise RefundProcessorError(str(e), code=e.stripe_error_code) from e

        status = STRIPE_REFUND_STATUSES.get(
            str(result["status"]), RefundProcessingStatus.PROCESSING
        )
        return str(result["refund_id"]), status


def is_interrupted(record: RefundRecord) -> bool:
    """PROCESSING with no processor reference: the submission never got an answer."""
    return (
        record.processing_status == RefundProcessingStatus.PROCESSING
        and record.processor_reference is None
    )


class RefundDispatcher:
    """Submits refunds and applies processor outcomes to the ledger."""

    def __init__(
        self,
        ledger: RefundLedger,
        booking_store: BookingStore,
        processor: RefundProcessor | None = None,
    ) -> None:
        """Initialize refund dispatcher.

        Args:
            ledger: Refund ledger holding the records
            booking_store: Source of the booking's payment reference
            processor: Payment processor, Stripe by default
        """
        self.ledger = ledger
        self.booking_store = booking_store
        self.processor = processor or StripeRefundProcessor()

    def submit(self, booking_id: str) -> RefundRecord:
        """Send a PENDING refund to the processor.

        A PROCESSING record without a processor reference was left behind
        by an interrupted submission and is sent again; the processor call
        is idempotent per refund ID. Records in any other status are
        returned unchanged, so submitting twice never pays twice.

        Raises:
            BookingEngineError: NOT_FOUND for an unknown record, CONFLICT if
                another dispatcher moved the record first.
        """
        record = self.ledger.get_record(booking_id)
        if record.processing_status == RefundProcessingStatus.PENDING or is_interrupted(record):
            return self._dispatch(record)
        logger.info(
            "Refund for booking %s already %s, not submitting",
            booking_id,
            record.processing_status.value,
        )
        return record

    def retry(self, booking_id: str) -> RefundRecord:
        """Resubmit a FAILED refund as the same record.

        Raises:
            BookingEngineError: INVALID_REQUEST if the refund has not failed.
        """
        record = self.ledger.get_record(booking_id)
        if record.processing_status != RefundProcessingStatus.FAILED:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={
                    "booking_id": booking_id,
                    "reason": f"refund is {record.processing_status.value}, not failed",
                },
            )
        return self._dispatch(record)

    def _dispatch(self, record: RefundRecord) -> RefundRecord:
        booking_id = record.booking_id
        resubmitted = record.processing_status == RefundProcessingStatus.PROCESSING

        if record.refund_amount == 0:
            if not resubmitted:
                self.ledger.transition(
                    booking_id,
                    record.processing_status,
                    RefundProcessingStatus.PROCESSING,
                    actor_id=DISPATCHER_ACTOR,
                )
            completed = self.ledger.transition(
                booking_id,
                RefundProcessingStatus.PROCESSING,
                RefundProcessingStatus.COMPLETED,
                actor_id=DISPATCHER_ACTOR,
            )
            log_refund_operation(
                logger,
                "submit_refund",
                booking_id=booking_id,
                refund_id=record.refund_id,
                amount_cents=0,
                status=completed.processing_status.value,
                skipped="zero_amount",
            )
            return completed

        booking = self.booking_store.get_booking(booking_id)
        if not booking.payment_reference:
            # Nothing to refund against until the payment is attached
            logger.warning("Booking %s has no payment reference, refund stays pending", booking_id)
            return record

        if resubmitted:
            processing = record
        else:
            processing = self.ledger.transition(
                booking_id,
                record.processing_status,
                RefundProcessingStatus.PROCESSING,
                count_attempt=True,
                actor_id=DISPATCHER_ACTOR,
            )

        try:
            reference, status = self.processor.request_refund(
                processing, booking.payment_reference
            )
        except RefundProcessorError as e:
            return self._fail(processing, e.code or str(e), str(e))
        except Exception as e:
            logger.error("Refund processor raised for booking %s: %r", booking_id, e)
            return self._fail(processing, type(e).__name__, str(e))

        log_refund_operation(
            logger,
            "submit_refund",
            booking_id=booking_id,
            refund_id=record.refund_id,
            amount_cents=record.refund_amount,
            status=status.value,
            processor_reference=reference,
            resubmitted=resubmitted or None,
        )
        return self.record_outcome(
            booking_id, status, processor_reference=reference, actor_id=DISPATCHER_ACTOR
        )

    def _fail(self, processing: RefundRecord, failure_reason: str, message: str) -> RefundRecord:
        log_refund_operation(
            logger,
            "submit_refund",
            booking_id=processing.booking_id,
            refund_id=processing.refund_id,
            amount_cents=processing.refund_amount,
            error=message or failure_reason,
        )
        return self.ledger.transition(
            processing.booking_id,
            RefundProcessingStatus.PROCESSING,
            RefundProcessingStatus.FAILED,
            failure_reason=failure_reason,
            actor_id=DISPATCHER_ACTOR,
        )

    def record_outcome(
        self,
        booking_id: str,
        status: RefundProcessingStatus,
        *,
        processor_reference: str | None = None,
        failure_reason: str | None = None,
        actor_id: str | None = None,
    ) -> RefundRecord:
        """Apply a processor outcome to a refund record.

        A repeated outcome is a no-op. PROCESSING only attaches the
        processor reference.

        Raises:
            BookingEngineError: INVALID_REQUEST for an outcome the state
                machine does not allow from the current status.
        """
        record = self.ledger.get_record(booking_id)

        if status == record.processing_status:
            if (
                status == RefundProcessingStatus.PROCESSING
                and processor_reference
                and record.processor_reference != processor_reference
            ):
                return self.ledger.attach_processor_reference(booking_id, processor_reference)
            return record

        return self.ledger.transition(
            booking_id,
            record.processing_status,
            status,
            processor_reference=processor_reference,
            failure_reason=failure_reason,
            actor_id=actor_id,
        )
