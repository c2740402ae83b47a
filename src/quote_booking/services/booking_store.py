"""Booking store: bookings created from accepted quotes.

A booking's ID is derived from its quote's ID, so the primary-key
condition on insert is the "one booking per quote" guard.
"""

import datetime as dt
from typing import Any

from quote_booking.models import (
    Booking,
    BookingEngineError,
    BookingStatus,
    ErrorCode,
    Quote,
)
from quote_booking.utils.logging import get_logger

from .clock import Clock, SystemClock
from .dynamodb import DynamoDBService, item_to_model, model_to_item, serialize_item
from .identifiers import booking_id_for

logger = get_logger(__name__)


class BookingStore:
    """Owns Booking records and their status transitions."""

    BOOKINGS_TABLE = "bookings"

    def __init__(self, db: DynamoDBService, clock: Clock | None = None) -> None:
        """Initialize booking store.

        Args:
            db: DynamoDB service instance
            clock: Time source for creation timestamps
        """
        self.db = db
        self.clock = clock or SystemClock()

    def build_booking(self, quote: Quote, actor_id: str, *, at: dt.datetime) -> Booking:
        """Snapshot a quote into a new PENDING booking (not persisted)."""
        return Booking(
            booking_id=booking_id_for(quote.quote_id),
            quote_id=quote.quote_id,
            request_id=quote.request_id,
            client_id=quote.client_id,
            provider_id=quote.provider_id,
            amount=quote.amount,
            currency=quote.currency,
            event_at=quote.event_at,
            policy_tier=quote.policy_tier,
            status=BookingStatus.PENDING,
            created_at=at,
            accepted_by=actor_id,
        )

    def create_booking(self, quote: Quote, actor_id: str) -> Booking:
        """Create a booking from a quote snapshot.

        Raises:
            BookingEngineError: ALREADY_EXISTS if the quote already has a booking.
        """
        booking = self.build_booking(quote, actor_id, at=self.clock.now())
        created = self.db.put_item(
            self.BOOKINGS_TABLE,
            model_to_item(booking),
            condition_expression="attribute_not_exists(booking_id)",
        )
        if not created:
            raise BookingEngineError(
                ErrorCode.ALREADY_EXISTS,
                details={"quote_id": quote.quote_id, "booking_id": booking.booking_id},
            )
        logger.info("Booking %s created from quote %s", booking.booking_id, quote.quote_id)
        return booking

    def put_booking_item(self, booking: Booking) -> dict[str, Any]:
        """Transaction Put inserting ``booking`` only if it does not exist."""
        return {
            "Put": {
                "TableName": self.db.table_name(self.BOOKINGS_TABLE),
                "Item": serialize_item(model_to_item(booking)),
                "ConditionExpression": "attribute_not_exists(booking_id)",
            }
        }

    def find_booking(self, booking_id: str) -> Booking | None:
        item = self.db.get_item(self.BOOKINGS_TABLE, {"booking_id": booking_id})
        return item_to_model(Booking, item) if item else None

    def get_booking(self, booking_id: str) -> Booking:
        """Get a booking by ID.

        Raises:
            BookingEngineError: NOT_FOUND if the booking does not exist.
        """
        booking = self.find_booking(booking_id)
        if booking is None:
            raise BookingEngineError(ErrorCode.NOT_FOUND, details={"booking_id": booking_id})
        return booking

    def get_booking_for_quote(self, quote_id: str) -> Booking | None:
        """The booking created from a quote, if any."""
        return self.find_booking(booking_id_for(quote_id))

    def transition_booking(
        self,
        booking_id: str,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> Booking:
        """Move a booking between statuses with a single check-and-set write.

        Raises:
            BookingEngineError: NOT_FOUND for an unknown booking, CONFLICT when
                the stored status no longer equals ``from_status``.
        """
        attrs = self.db.update_item(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            "SET #s = :to",
            {":to": to_status.value, ":from": from_status.value},
            {"#s": "status"},
            condition_expression="attribute_exists(booking_id) AND #s = :from",
        )
        if attrs is None:
            current = self.get_booking(booking_id)
            raise BookingEngineError(
                ErrorCode.CONFLICT,
                details={"booking_id": booking_id, "current_status": current.status.value},
            )
        logger.info(
            "Booking %s moved %s -> %s", booking_id, from_status.value, to_status.value
        )
        return item_to_model(Booking, attrs)

    def cancel_item(
        self,
        booking: Booking,
        *,
        actor_id: str,
        reason: str | None,
        at: dt.datetime,
    ) -> dict[str, Any]:
        """Transaction Update cancelling ``booking`` from its observed status."""
        values: dict[str, Any] = {
            ":cancelled": BookingStatus.CANCELLED.value,
            ":from": booking.status.value,
            ":at": at.isoformat(),
            ":actor": actor_id,
        }
        update = "SET #s = :cancelled, cancelled_at = :at, cancelled_by = :actor"
        if reason:
            update += ", cancellation_reason = :reason"
            values[":reason"] = reason
        return {
            "Update": {
                "TableName": self.db.table_name(self.BOOKINGS_TABLE),
                "Key": serialize_item({"booking_id": booking.booking_id}),
                "UpdateExpression": update,
                "ConditionExpression": "#s = :from",
                "ExpressionAttributeNames": {"#s": "status"},
                "ExpressionAttributeValues": serialize_item(values),
            }
        }

    def attach_payment_reference(self, booking_id: str, payment_reference: str) -> Booking:
        """Record the external payment that paid for a booking.

        Raises:
            BookingEngineError: NOT_FOUND for an unknown booking, CONFLICT if
                a different payment is already attached.
        """
        attrs = self.db.update_item(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            "SET payment_reference = :ref",
            {":ref": payment_reference},
            condition_expression=(
                "attribute_exists(booking_id) AND "
                "(attribute_not_exists(payment_reference) OR payment_reference = :ref)"
            ),
        )
        if attrs is None:
            current = self.get_booking(booking_id)
            raise BookingEngineError(
                ErrorCode.CONFLICT,
                details={
                    "booking_id": booking_id,
                    "payment_reference": current.payment_reference or "",
                },
            )
        return item_to_model(Booking, attrs)
