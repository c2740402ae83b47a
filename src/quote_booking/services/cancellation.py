"""Booking cancellation with a recorded refund decision.

The booking's move to CANCELLED, the refund record and its first audit
event commit in one transaction. Cancelling a booking that already has a
refund record returns that record, so callers can safely retry.
"""

from quote_booking.models import (
    CANCELLABLE_BOOKING_STATUSES,
    BookingEngineError,
    ErrorCode,
    RefundRecord,
)
from quote_booking.utils.logging import get_logger, log_refund_operation

from .booking_store import BookingStore
from .clock import Clock, SystemClock
from .dynamodb import TransactionCancelledError, transient_store_errors
from .refund_calculator import RefundCalculator
from .refund_dispatch import RefundDispatcher
from .refund_ledger import RefundLedger

logger = get_logger(__name__)

FORCE_MAJEURE_MIN_REASON_LENGTH = 20


class CancellationCoordinator:
    """Cancels bookings and records the refund owed."""

    def __init__(
        self,
        booking_store: BookingStore,
        refund_ledger: RefundLedger,
        calculator: RefundCalculator | None = None,
        clock: Clock | None = None,
        dispatcher: RefundDispatcher | None = None,
    ) -> None:
        """Initialize cancellation coordinator.

        Args:
            booking_store: Store holding the bookings
            refund_ledger: Ledger receiving refund records
            calculator: Refund calculator, policy table from the environment if omitted
            clock: Time source for the cancellation instant
            dispatcher: Optional hand-off to the payment processor after commit
        """
        self.booking_store = booking_store
        self.refund_ledger = refund_ledger
        self.calculator = calculator or RefundCalculator()
        self.clock = clock or SystemClock()
        self.dispatcher = dispatcher
        self.db = booking_store.db

    def cancel_booking(
        self,
        booking_id: str,
        actor_id: str,
        reason: str | None = None,
        force_majeure: bool = False,
    ) -> RefundRecord:
        """Cancel a booking and record its refund.

        Args:
            booking_id: Booking to cancel
            actor_id: Who cancels
            reason: Free-text cancellation reason
            force_majeure: Claim a full refund; needs a written justification

        Returns:
            The refund record, PENDING when created by this call

        Raises:
            BookingEngineError: INVALID_REQUEST, NOT_FOUND, NOT_CANCELLABLE,
                CONFLICT or TRANSIENT_FAILURE.
        """
        if force_majeure and len((reason or "").strip()) < FORCE_MAJEURE_MIN_REASON_LENGTH:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={
                    "booking_id": booking_id,
                    "reason": "force majeure requires a justification of at least "
                    f"{FORCE_MAJEURE_MIN_REASON_LENGTH} characters",
                },
            )

        try:
            with transient_store_errors("cancel_booking"):
                record, created = self._cancel(booking_id, actor_id, reason, force_majeure)
        except BookingEngineError as e:
            log_refund_operation(
                logger, "cancel_booking", booking_id=booking_id, error=e.code.name
            )
            raise

        log_refund_operation(
            logger,
            "cancel_booking",
            booking_id=booking_id,
            refund_id=record.refund_id,
            amount_cents=record.refund_amount,
            percentage=record.refund_percentage,
            status=record.processing_status.value,
            replay=not created,
        )

        if created and self.dispatcher is not None:
            self._hand_off(self.dispatcher, record)
        return record

    def _cancel(
        self,
        booking_id: str,
        actor_id: str,
        reason: str | None,
        force_majeure: bool,
    ) -> tuple[RefundRecord, bool]:
        booking = self.booking_store.get_booking(booking_id)

        existing = self.refund_ledger.find_record(booking_id)
        if existing is not None:
            return existing, False

        if booking.status not in CANCELLABLE_BOOKING_STATUSES:
            raise BookingEngineError(
                ErrorCode.NOT_CANCELLABLE,
                details={"booking_id": booking_id, "status": booking.status.value},
            )

        now = self.clock.now()
        computation = self.calculator.compute_refund(
            self.calculator.policy_table.resolve(booking.policy_tier),
            booking.amount,
            booking.event_at,
            now,
            force_majeure=force_majeure,
        )
        record = self.refund_ledger.build_record(booking, computation, reason=reason, at=now)

        items = [self.booking_store.cancel_item(booking, actor_id=actor_id, reason=reason, at=now)]
        items.extend(self.refund_ledger.record_items(record, actor_id=actor_id))

        try:
            self.db.transact_write(items)
        except TransactionCancelledError as e:
            existing = self.refund_ledger.find_record(booking_id)
            if existing is not None:
                return existing, False
            current = self.booking_store.get_booking(booking_id)
            if current.status != booking.status:
                raise BookingEngineError(
                    ErrorCode.CONFLICT,
                    details={"booking_id": booking_id, "current_status": current.status.value},
                ) from e
            raise BookingEngineError(
                ErrorCode.TRANSIENT_FAILURE,
                details={"booking_id": booking_id, "operation": "cancel_booking"},
            ) from e

        return record, True

    def _hand_off(self, dispatcher: RefundDispatcher, record: RefundRecord) -> None:
        """Submit the refund; the cancellation stands whatever happens here."""
        try:
            with transient_store_errors("submit_refund"):
                dispatcher.submit(record.booking_id)
        except BookingEngineError as e:
            # Record stays PENDING or FAILED and is picked up by a later retry
            log_refund_operation(
                logger,
                "submit_refund",
                booking_id=record.booking_id,
                refund_id=record.refund_id,
                error=e.code.name,
            )
        except Exception as e:
            # Interrupted submissions are resent by the next submit
            log_refund_operation(
                logger,
                "submit_refund",
                booking_id=record.booking_id,
                refund_id=record.refund_id,
                error=type(e).__name__,
                detail=str(e),
            )
