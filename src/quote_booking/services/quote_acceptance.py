"""Quote acceptance: accept one quote, refuse its siblings, create the booking.

All writes go into a single TransactWriteItems call:
1. target quote -> ACCEPTED   (condition: stored status unchanged)
2. open siblings -> REFUSED   (condition: stored status unchanged)
3. booking put                (condition: no booking for this quote)
4. request -> CLOSED          (condition: request still open)

Either everything commits or nothing does, so "accepted" always implies
"every sibling refused". A losing concurrent caller fails at least one
condition and sees CONFLICT; it never leaves a partial booking behind.
"""

from quote_booking.models import (
    Booking,
    BookingEngineError,
    ErrorCode,
    QuoteStatus,
    RequestStatus,
)
from quote_booking.utils.logging import get_logger, log_quote_operation

from .booking_store import BookingStore
from .clock import Clock, SystemClock
from .dynamodb import TransactionCancelledError, transient_store_errors
from .quote_store import QuoteStore

logger = get_logger(__name__)

# TransactWriteItems accepts at most 100 items; 3 are fixed
MAX_SIBLINGS_PER_ACCEPT = 97


class QuoteAcceptanceCoordinator:
    """Orchestrates the atomic quote-to-booking conversion."""

    def __init__(
        self,
        quote_store: QuoteStore,
        booking_store: BookingStore,
        clock: Clock | None = None,
    ) -> None:
        self.quote_store = quote_store
        self.booking_store = booking_store
        self.clock = clock or SystemClock()
        self.db = quote_store.db

    def accept_quote(self, request_id: str, quote_id: str, actor_id: str) -> Booking:
        """Accept a quote for a service request and create its booking.

        Args:
            request_id: Request the quote must belong to
            quote_id: Quote to accept
            actor_id: Client accepting the quote

        Returns:
            The new PENDING booking

        Raises:
            BookingEngineError: NOT_FOUND, INVALID_REQUEST, NOT_ACCEPTABLE,
                EXPIRED, CONFLICT or TRANSIENT_FAILURE.
        """
        try:
            with transient_store_errors("accept_quote"):
                booking = self._accept(request_id, quote_id, actor_id)
        except BookingEngineError as e:
            log_quote_operation(
                logger,
                "accept_quote",
                request_id=request_id,
                quote_id=quote_id,
                actor_id=actor_id,
                error=e.code.name,
            )
            raise

        log_quote_operation(
            logger,
            "accept_quote",
            request_id=request_id,
            quote_id=quote_id,
            booking_id=booking.booking_id,
            actor_id=actor_id,
            status=QuoteStatus.ACCEPTED.value,
            amount_cents=booking.amount,
        )
        return booking

    def _accept(self, request_id: str, quote_id: str, actor_id: str) -> Booking:
        quote = self.quote_store.get_quote(quote_id)
        now = self.clock.now()

        if quote.request_id != request_id:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={"quote_id": quote_id, "request_id": request_id},
            )
        if not quote.status.is_open:
            raise BookingEngineError(
                ErrorCode.NOT_ACCEPTABLE,
                details={"quote_id": quote_id, "status": quote.status.value},
            )
        # Stored status may still say SENT/VIEWED; expiry is judged on read
        if quote.is_expired(now):
            raise BookingEngineError(
                ErrorCode.EXPIRED,
                details={"quote_id": quote_id, "expires_at": quote.expires_at.isoformat()},
            )

        siblings = [
            q
            for q in self.quote_store.get_quotes_for_request(request_id)
            if q.quote_id != quote_id and q.status.is_open
        ]
        if len(siblings) > MAX_SIBLINGS_PER_ACCEPT:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={"request_id": request_id, "reason": "too_many_open_quotes"},
            )

        booking = self.booking_store.build_booking(quote, actor_id, at=now)
        items = [
            self.quote_store.status_update_item(
                quote, QuoteStatus.ACCEPTED, at=now, actor_id=actor_id
            )
        ]
        items.extend(
            self.quote_store.status_update_item(
                sibling, QuoteStatus.REFUSED, at=now, actor_id=actor_id
            )
            for sibling in siblings
        )
        items.append(self.booking_store.put_booking_item(booking))
        items.append(self.quote_store.close_request_item(request_id, at=now))

        try:
            self.db.transact_write(items)
        except TransactionCancelledError as e:
            raise self._classify_failure(request_id, quote_id, quote.status, e) from e

        return booking

    def _classify_failure(
        self,
        request_id: str,
        quote_id: str,
        observed: QuoteStatus,
        error: TransactionCancelledError,
    ) -> BookingEngineError:
        """Decide whether a cancelled transaction lost a race or just failed.

        Re-reads current state instead of trusting cancellation reasons alone:
        if the target, the request or the booking moved, someone else won.
        """
        current = self.quote_store.get_quote(quote_id)
        request = self.quote_store.get_request(request_id)
        existing = self.booking_store.get_booking_for_quote(quote_id)

        if (
            current.status != observed
            or request.status != RequestStatus.OPEN
            or existing is not None
        ):
            return BookingEngineError(
                ErrorCode.CONFLICT,
                details={
                    "quote_id": quote_id,
                    "current_status": current.status.value,
                    "request_status": request.status.value,
                },
            )

        # Only a sibling changed underneath us, or the store conflicted; the
        # target is untouched so a retry re-reads siblings and is safe.
        logger.warning(
            "Accept of quote %s cancelled without a winner (reasons=%s)",
            quote_id,
            error.reasons,
        )
        return BookingEngineError(
            ErrorCode.TRANSIENT_FAILURE,
            details={"quote_id": quote_id, "operation": "accept_quote"},
        )
