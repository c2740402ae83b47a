"""Pydantic models for quote, booking and refund records."""

from .booking import Booking
from .enums import (
    CANCELLABLE_BOOKING_STATUSES,
    OPEN_QUOTE_STATUSES,
    REFUND_TRANSITIONS,
    TERMINAL_QUOTE_STATUSES,
    BookingStatus,
    PolicyTier,
    QuoteStatus,
    RefundProcessingStatus,
    RequestStatus,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    RETRYABLE_ERRORS,
    BookingEngineError,
    ErrorCode,
    ErrorResponse,
)
from .processor_event import ProcessorWebhookEvent
from .quote import Quote, QuoteCreate, ServiceRequest
from .refund import RefundComputation, RefundLedgerEvent, RefundRecord, RefundRule

__all__ = [
    # Enums
    "BookingStatus",
    "PolicyTier",
    "QuoteStatus",
    "RefundProcessingStatus",
    "RequestStatus",
    "CANCELLABLE_BOOKING_STATUSES",
    "OPEN_QUOTE_STATUSES",
    "REFUND_TRANSITIONS",
    "TERMINAL_QUOTE_STATUSES",
    # Quote
    "Quote",
    "QuoteCreate",
    "ServiceRequest",
    # Booking
    "Booking",
    # Refund
    "RefundComputation",
    "RefundLedgerEvent",
    "RefundRecord",
    "RefundRule",
    # Errors
    "BookingEngineError",
    "ErrorCode",
    "ErrorResponse",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "RETRYABLE_ERRORS",
    # Processor
    "ProcessorWebhookEvent",
]
