"""Quote store: service requests, quotes and their status transitions.

Every status change is a single conditional write on the stored status,
so a transition only applies if nobody moved the quote first. No
cascading happens here; multi-quote changes are composed into one
transaction by the acceptance coordinator from the item builders below.
"""

import datetime as dt
from typing import Any

from quote_booking.models import (
    BookingEngineError,
    ErrorCode,
    Quote,
    QuoteCreate,
    QuoteStatus,
    RequestStatus,
    ServiceRequest,
)
from quote_booking.utils.logging import get_logger, log_quote_operation

from .clock import Clock, SystemClock
from .dynamodb import (
    DynamoDBService,
    TransactionCancelledError,
    item_to_model,
    model_to_item,
    serialize_item,
)
from .identifiers import new_request_id, quote_id_for

logger = get_logger(__name__)


def _iso(value: dt.datetime) -> str:
    return value.isoformat()


class QuoteStore:
    """Owns ServiceRequest and Quote records."""

    REQUESTS_TABLE = "service-requests"
    QUOTES_TABLE = "quotes"
    REQUEST_INDEX = "request_id-index"

    def __init__(self, db: DynamoDBService, clock: Clock | None = None) -> None:
        """Initialize quote store.

        Args:
            db: DynamoDB service instance
            clock: Time source for issue/decision timestamps and expiry
        """
        self.db = db
        self.clock = clock or SystemClock()

    # =========================================================================
    # Service requests
    # =========================================================================

    def open_request(self, client_id: str, title: str) -> ServiceRequest:
        """Open a new service request for a client."""
        request = ServiceRequest(
            request_id=new_request_id(),
            client_id=client_id,
            title=title,
            status=RequestStatus.OPEN,
            created_at=self.clock.now(),
        )
        self.db.put_item(
            self.REQUESTS_TABLE,
            model_to_item(request),
            condition_expression="attribute_not_exists(request_id)",
        )
        log_quote_operation(
            logger, "open_request", request_id=request.request_id, actor_id=client_id
        )
        return request

    def get_request(self, request_id: str) -> ServiceRequest:
        """Get a service request.

        Raises:
            BookingEngineError: NOT_FOUND if the request does not exist.
        """
        item = self.db.get_item(self.REQUESTS_TABLE, {"request_id": request_id})
        if not item:
            raise BookingEngineError(ErrorCode.NOT_FOUND, details={"request_id": request_id})
        return item_to_model(ServiceRequest, item)

    # =========================================================================
    # Quotes
    # =========================================================================

    def issue_quote(self, data: QuoteCreate) -> Quote:
        """Send a provider's quote for an open request.

        The quote write is conditioned on the request still being open, so a
        quote can never slip in after another one was accepted.

        Raises:
            BookingEngineError: NOT_FOUND for an unknown request,
                INVALID_REQUEST if the request is closed,
                ALREADY_EXISTS if this provider already quoted the request.
        """
        request = self.get_request(data.request_id)
        if request.status != RequestStatus.OPEN:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={"request_id": request.request_id, "reason": "request_closed"},
            )

        now = self.clock.now()
        quote = Quote(
            quote_id=quote_id_for(data.request_id, data.provider_id),
            request_id=data.request_id,
            provider_id=data.provider_id,
            client_id=request.client_id,
            amount=data.amount,
            currency=data.currency,
            issued_at=now,
            expires_at=now + dt.timedelta(days=data.validity_days),
            event_at=data.event_at,
            policy_tier=data.policy_tier,
            status=QuoteStatus.SENT,
        )

        try:
            self.db.transact_write(
                [
                    {
                        "ConditionCheck": {
                            "TableName": self.db.table_name(self.REQUESTS_TABLE),
                            "Key": serialize_item({"request_id": request.request_id}),
                            "ConditionExpression": "#s = :open",
                            "ExpressionAttributeNames": {"#s": "status"},
                            "ExpressionAttributeValues": serialize_item(
                                {":open": RequestStatus.OPEN.value}
                            ),
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.db.table_name(self.QUOTES_TABLE),
                            "Item": serialize_item(model_to_item(quote)),
                            "ConditionExpression": "attribute_not_exists(quote_id)",
                        }
                    },
                ]
            )
        except TransactionCancelledError as e:
            if self.get_request(request.request_id).status != RequestStatus.OPEN:
                raise BookingEngineError(
                    ErrorCode.INVALID_REQUEST,
                    details={"request_id": request.request_id, "reason": "request_closed"},
                ) from e
            if self._find_quote(quote.quote_id) is not None:
                raise BookingEngineError(
                    ErrorCode.ALREADY_EXISTS, details={"quote_id": quote.quote_id}
                ) from e
            raise BookingEngineError(
                ErrorCode.TRANSIENT_FAILURE, details={"operation": "issue_quote"}
            ) from e

        log_quote_operation(
            logger,
            "issue_quote",
            request_id=quote.request_id,
            quote_id=quote.quote_id,
            actor_id=quote.provider_id,
            status=quote.status.value,
            amount_cents=quote.amount,
        )
        return quote

    def _find_quote(self, quote_id: str) -> Quote | None:
        item = self.db.get_item(self.QUOTES_TABLE, {"quote_id": quote_id})
        return item_to_model(Quote, item) if item else None

    def get_quote(self, quote_id: str) -> Quote:
        """Get a quote by ID.

        Raises:
            BookingEngineError: NOT_FOUND if the quote does not exist.
        """
        quote = self._find_quote(quote_id)
        if quote is None:
            raise BookingEngineError(ErrorCode.NOT_FOUND, details={"quote_id": quote_id})
        return quote

    def get_quotes_for_request(self, request_id: str) -> list[Quote]:
        """All quotes for a request, any status, oldest first."""
        items = self.db.query_by_gsi(
            self.QUOTES_TABLE,
            self.REQUEST_INDEX,
            "request_id",
            request_id,
        )
        quotes = [item_to_model(Quote, item) for item in items]
        return sorted(quotes, key=lambda q: (q.issued_at, q.quote_id))

    def transition_quote(
        self,
        quote_id: str,
        from_status: QuoteStatus,
        to_status: QuoteStatus,
        *,
        actor_id: str | None = None,
    ) -> Quote:
        """Move a quote between statuses with a single check-and-set write.

        Raises:
            BookingEngineError: INVALID_REQUEST when leaving a terminal status,
                NOT_FOUND for an unknown quote, CONFLICT when the stored
                status no longer equals ``from_status``.
        """
        if from_status.is_terminal or from_status == to_status:
            raise BookingEngineError(
                ErrorCode.INVALID_REQUEST,
                details={
                    "quote_id": quote_id,
                    "reason": f"cannot move from {from_status.value} to {to_status.value}",
                },
            )

        now = self.clock.now()
        sets = ["#s = :to"]
        values: dict[str, Any] = {
            ":to": to_status.value,
            ":from": from_status.value,
        }
        if to_status == QuoteStatus.VIEWED:
            sets.append("viewed_at = :at")
            values[":at"] = _iso(now)
        else:
            sets.append("decided_at = :at")
            values[":at"] = _iso(now)
            if actor_id:
                sets.append("decided_by = :actor")
                values[":actor"] = actor_id

        attrs = self.db.update_item(
            self.QUOTES_TABLE,
            {"quote_id": quote_id},
            "SET " + ", ".join(sets),
            values,
            {"#s": "status"},
            condition_expression="attribute_exists(quote_id) AND #s = :from",
        )
        if attrs is None:
            current = self.get_quote(quote_id)
            raise BookingEngineError(
                ErrorCode.CONFLICT,
                details={"quote_id": quote_id, "current_status": current.status.value},
            )
        return item_to_model(Quote, attrs)

    def mark_viewed(self, quote_id: str) -> Quote:
        """Record the client's first read of a quote.

        Only a SENT quote moves to VIEWED; any other quote is returned as is.
        """
        quote = self.get_quote(quote_id)
        if quote.status != QuoteStatus.SENT:
            return quote
        try:
            return self.transition_quote(quote_id, QuoteStatus.SENT, QuoteStatus.VIEWED)
        except BookingEngineError as e:
            if e.code != ErrorCode.CONFLICT:
                raise
            return self.get_quote(quote_id)

    def refuse_quote(self, quote_id: str, actor_id: str) -> Quote:
        """Client declines one quote without accepting another.

        Raises:
            BookingEngineError: NOT_ACCEPTABLE if the quote is no longer open,
                CONFLICT if it changed while refusing.
        """
        quote = self.get_quote(quote_id)
        if quote.effective_status(self.clock.now()) not in (QuoteStatus.SENT, QuoteStatus.VIEWED):
            raise BookingEngineError(
                ErrorCode.NOT_ACCEPTABLE,
                details={"quote_id": quote_id, "status": quote.status.value},
            )
        refused = self.transition_quote(
            quote_id, quote.status, QuoteStatus.REFUSED, actor_id=actor_id
        )
        log_quote_operation(
            logger,
            "refuse_quote",
            request_id=quote.request_id,
            quote_id=quote_id,
            actor_id=actor_id,
            status=refused.status.value,
        )
        return refused

    def expire_stale_quotes(self, request_id: str) -> list[Quote]:
        """Advisory sweep: store EXPIRED on open quotes past their window.

        Acceptance never depends on this running; expiry is also checked on
        every read. Quotes moved by someone else meanwhile are skipped.

        Returns:
            Quotes that were expired by this sweep
        """
        now = self.clock.now()
        expired: list[Quote] = []
        for quote in self.get_quotes_for_request(request_id):
            if not (quote.status.is_open and quote.is_expired(now)):
                continue
            try:
                expired.append(
                    self.transition_quote(quote.quote_id, quote.status, QuoteStatus.EXPIRED)
                )
            except BookingEngineError as e:
                if e.code != ErrorCode.CONFLICT:
                    raise
                logger.info("Quote %s changed during expiry sweep, skipping", quote.quote_id)

        if expired:
            log_quote_operation(
                logger,
                "expire_stale_quotes",
                request_id=request_id,
                expired=len(expired),
            )
        return expired

    # =========================================================================
    # Transaction item builders
    # =========================================================================

    def status_update_item(
        self,
        quote: Quote,
        to_status: QuoteStatus,
        *,
        at: dt.datetime,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        """Conditional Update moving ``quote`` from its observed status."""
        values: dict[str, Any] = {
            ":to": to_status.value,
            ":from": quote.status.value,
            ":at": _iso(at),
        }
        update = "SET #s = :to, decided_at = :at"
        if actor_id:
            update += ", decided_by = :actor"
            values[":actor"] = actor_id
        return {
            "Update": {
                "TableName": self.db.table_name(self.QUOTES_TABLE),
                "Key": serialize_item({"quote_id": quote.quote_id}),
                "UpdateExpression": update,
                "ConditionExpression": "#s = :from",
                "ExpressionAttributeNames": {"#s": "status"},
                "ExpressionAttributeValues": serialize_item(values),
            }
        }

    def close_request_item(self, request_id: str, *, at: dt.datetime) -> dict[str, Any]:
        """Conditional Update closing an open request."""
        return {
            "Update": {
                "TableName": self.db.table_name(self.REQUESTS_TABLE),
                "Key": serialize_item({"request_id": request_id}),
                "UpdateExpression": "SET #s = :closed, closed_at = :at",
                "ConditionExpression": "#s = :open",
                "ExpressionAttributeNames": {"#s": "status"},
                "ExpressionAttributeValues": serialize_item(
                    {
                        ":closed": RequestStatus.CLOSED.value,
                        ":open": RequestStatus.OPEN.value,
                        ":at": _iso(at),
                    }
                ),
            }
        }
