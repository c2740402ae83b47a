"""Enumeration types for quote, booking and refund records."""

from enum import Enum


class RequestStatus(str, Enum):
    """Status of a client's service request."""

    OPEN = "open"
    CLOSED = "closed"  # A quote was accepted


class QuoteStatus(str, Enum):
    """Status of a provider's quote."""

    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_QUOTE_STATUSES

    @property
    def is_open(self) -> bool:
        return self in OPEN_QUOTE_STATUSES


OPEN_QUOTE_STATUSES = frozenset({QuoteStatus.SENT, QuoteStatus.VIEWED})
TERMINAL_QUOTE_STATUSES = frozenset(
    {QuoteStatus.ACCEPTED, QuoteStatus.REFUSED, QuoteStatus.EXPIRED}
)


class BookingStatus(str, Enum):
    """Status of a booking created from an accepted quote."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


CANCELLABLE_BOOKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)


class PolicyTier(str, Enum):
    """Named cancellation-refund schedule chosen by a provider."""

    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"


class RefundProcessingStatus(str, Enum):
    """Status of a refund as handled by the external payment processor."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Allowed processing transitions; FAILED -> PROCESSING is a retry of the same record
REFUND_TRANSITIONS: dict[RefundProcessingStatus, frozenset[RefundProcessingStatus]] = {
    RefundProcessingStatus.PENDING: frozenset({RefundProcessingStatus.PROCESSING}),
    RefundProcessingStatus.PROCESSING: frozenset(
        {
            RefundProcessingStatus.COMPLETED,
            RefundProcessingStatus.FAILED,
            RefundProcessingStatus.CANCELLED,
        }
    ),
    RefundProcessingStatus.FAILED: frozenset({RefundProcessingStatus.PROCESSING}),
    RefundProcessingStatus.COMPLETED: frozenset(),
    RefundProcessingStatus.CANCELLED: frozenset(),
}
