"""Refund ledger: one refund record per booking plus an append-only audit trail.

The refunds table is keyed by booking ID, so a second record for the same
booking fails its ``attribute_not_exists`` condition. Decision fields are
never rewritten; processing status moves only along REFUND_TRANSITIONS,
and every change appends an entry to the events table.
"""

import datetime as dt
import time
from typing import Any

from boto3.dynamodb.conditions import Key

from quote_booking.models import (
    REFUND_TRANSITIONS,
    Booking,
    BookingEngineError,
    ErrorCode,
    RefundComputation,
    RefundLedgerEvent,
    RefundProcessingStatus,
    RefundRecord,
)
from quote_booking.utils.logging import get_logger, log_refund_operation

from .clock import Clock, SystemClock
from .dynamodb import (
    DynamoDBService,
    TransactionCancelledError,
    item_to_model,
    model_to_item,
    serialize_item,
)
from .identifiers import refund_id_for

logger = get_logger(__name__)


class RefundLedger:
    """Persistence and audit trail for refund decisions."""

    REFUNDS_TABLE = "refunds"
    EVENTS_TABLE = "refund-events"

    def __init__(self, db: DynamoDBService, clock: Clock | None = None) -> None:
        """Initialize refund ledger.

        Args:
            db: DynamoDB service instance
            clock: Time source for status-change timestamps
        """
        self.db = db
        self.clock = clock or SystemClock()

    @staticmethod
    def build_record(
        booking: Booking,
        computation: RefundComputation,
        *,
        reason: str | None,
        at: dt.datetime,
    ) -> RefundRecord:
        """Create the PENDING refund record for a cancelled booking (not persisted)."""
        return RefundRecord(
            refund_id=refund_id_for(booking.booking_id),
            booking_id=booking.booking_id,
            original_amount=booking.amount,
            currency=booking.currency,
            refund_percentage=computation.percentage,
            refund_amount=computation.amount,
            policy_tier=computation.policy_tier,
            force_majeure=computation.force_majeure,
            reason=reason,
            computed_at=at,
            processing_status=RefundProcessingStatus.PENDING,
            updated_at=at,
        )

    def _event(
        self,
        record: RefundRecord,
        event_type: str,
        status: RefundProcessingStatus,
        *,
        at: dt.datetime,
        actor_id: str | None = None,
        detail: str | None = None,
    ) -> RefundLedgerEvent:
        return RefundLedgerEvent(
            booking_id=record.booking_id,
            sequence=f"{at.isoformat()}#{time.time_ns():020d}",
            event_type=event_type,
            refund_id=record.refund_id,
            processing_status=status,
            actor_id=actor_id,
            refund_amount=record.refund_amount if event_type == "decision" else None,
            refund_percentage=record.refund_percentage if event_type == "decision" else None,
            detail=detail,
            recorded_at=at,
        )

    def _put_event_item(self, event: RefundLedgerEvent) -> dict[str, Any]:
        return {
            "Put": {
                "TableName": self.db.table_name(self.EVENTS_TABLE),
                "Item": serialize_item(model_to_item(event)),
                "ConditionExpression": "attribute_not_exists(#seq)",
                "ExpressionAttributeNames": {"#seq": "sequence"},
            }
        }

    def record_items(self, record: RefundRecord, *, actor_id: str) -> list[dict[str, Any]]:
        """Transaction items inserting ``record`` and its decision event."""
        decision = self._event(
            record,
            "decision",
            record.processing_status,
            at=record.computed_at,
            actor_id=actor_id,
            detail=record.reason,
        )
        return [
            {
                "Put": {
                    "TableName": self.db.table_name(self.REFUNDS_TABLE),
                    "Item": serialize_item(model_to_item(record)),
                    "ConditionExpression": "attribute_not_exists(booking_id)",
                }
            },
            self._put_event_item(decision),
        ]

    def record(self, record: RefundRecord, *, actor_id: str) -> RefundRecord:
        """Persist a refund record, or return the one already stored.

        A duplicate for the same booking is treated as already processed.
        """
        try:
            self.db.transact_write(self.record_items(record, actor_id=actor_id))
        except TransactionCancelledError as e:
            existing = self.find_record(record.booking_id)
            if existing is None:
                raise BookingEngineError(
                    ErrorCode.TRANSIENT_FAILURE,
                    details={"operation": "record_refund", "booking_id": record.booking_id},
                ) from e
            logger.info("Refund for booking %s already recorded", record.booking_id)
            return existing
        return record

    def find_record(self, booking_id: str) -> RefundRecord | None:
        item = self.db.get_item(self.REFUNDS_TABLE, {"booking_id": booking_id})
        return item_to_model(RefundRecord, item) if item else None

    def get_record(self, booking_id: str) -> RefundRecord:
        """Get the refund record for a booking.

        Raises:
            BookingEngineError: NOT_FOUND if the booking has no refund record.
        """
        record = self.find_record(booking_id)
        if record is None:
            raise BookingEngineError(ErrorCode.NOT_FOUND, details={"booking_id": booking_id})
        return record

    def transition(
        self,
        booking_id: str,
        from_status: RefundProcessingStatus,
        to_status: RefundProcessingStatus,
        *,
        processor_reference: str | None = None,
        failure_reason: str | None = None,
        count_attempt: bool = False,
        actor_id: str | None = None,
    ) -> RefundRecord:
        """Move a record's processing status with a check-and-set write.

        The status change and its audit event commit together.

        Raises:
            BookingEngineError: INVALID_REQUEST for a transition outside the
                state machine, NOT_FOUND for an unknown record, CONFLICT when
                the stored status no longer equals ``from_status``.
        """
        if to_status not in REFUND_TRANSITIONS[from_status]:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={
                    "booking_id": booking_id,
                    "reason": f"cannot move from {from_status.value} to {to_status.value}",
                },
            )

        record = self.get_record(booking_id)
        now = self.clock.now()

        sets = ["processing_status = :to", "updated_at = :now"]
        values: dict[str, Any] = {
            ":to": to_status.value,
            ":from": from_status.value,
            ":now": now.isoformat(),
        }
        if processor_reference:
            sets.append("processor_reference = :ref")
            values[":ref"] = processor_reference
        if failure_reason:
            sets.append("failure_reason = :why")
            values[":why"] = failure_reason
        if count_attempt:
            sets.append("attempts = attempts + :one")
            values[":one"] = 1

        event = self._event(
            record,
            "status_change",
            to_status,
            at=now,
            actor_id=actor_id,
            detail=failure_reason or processor_reference,
        )

        try:
            self.db.transact_write(
                [
                    {
                        "Update": {
                            "TableName": self.db.table_name(self.REFUNDS_TABLE),
                            "Key": serialize_item({"booking_id": booking_id}),
                            "UpdateExpression": "SET " + ", ".join(sets),
                            "ConditionExpression": "processing_status = :from",
                            "ExpressionAttributeValues": serialize_item(values),
                        }
                    },
                    self._put_event_item(event),
                ]
            )
        except TransactionCancelledError as e:
            current = self.get_record(booking_id)
            raise BookingEngineError(
                ErrorCode.CONFLICT,
                details={
                    "booking_id": booking_id,
                    "current_status": current.processing_status.value,
                },
            ) from e

        log_refund_operation(
            logger,
            "transition_refund",
            booking_id=booking_id,
            refund_id=record.refund_id,
            status=to_status.value,
            previous_status=from_status.value,
        )
        return self.get_record(booking_id)

    def attach_processor_reference(
        self, booking_id: str, processor_reference: str
    ) -> RefundRecord:
        """Store the processor's refund ID on a record that is being processed.

        Raises:
            BookingEngineError: CONFLICT if the record is no longer PROCESSING
                or already carries a different reference.
        """
        attrs = self.db.update_item(
            self.REFUNDS_TABLE,
            {"booking_id": booking_id},
            "SET processor_reference = :ref, updated_at = :now",
            {
                ":ref": processor_reference,
                ":now": self.clock.now().isoformat(),
                ":processing": RefundProcessingStatus.PROCESSING.value,
            },
            condition_expression=(
                "processing_status = :processing AND "
                "(attribute_not_exists(processor_reference) OR processor_reference = :ref)"
            ),
        )
        if attrs is None:
            raise BookingEngineError(
                ErrorCode.CONFLICT,
                details={"booking_id": booking_id, "processor_reference": processor_reference},
            )
        return item_to_model(RefundRecord, attrs)

    def events(self, booking_id: str) -> list[RefundLedgerEvent]:
        """Audit trail for a booking's refund, oldest first."""
        items = self.db.query(
            self.EVENTS_TABLE,
            Key("booking_id").eq(booking_id),
        )
        events = [item_to_model(RefundLedgerEvent, item) for item in items]
        return sorted(events, key=lambda e: (e.recorded_at, e.sequence))
