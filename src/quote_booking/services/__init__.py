"""Engine services: stores, coordinators and payment processor integration."""

from .booking_store import BookingStore
from .cancellation import CancellationCoordinator
from .clock import Clock, FixedClock, SystemClock
from .dynamodb import (
    DynamoDBService,
    TransactionCancelledError,
    get_dynamodb_service,
    reset_dynamodb_service,
)
from .policy_table import DEFAULT_RULES, PolicyTable
from .quote_acceptance import QuoteAcceptanceCoordinator
from .quote_store import QuoteStore
from .refund_calculator import RefundCalculator
from .refund_dispatch import (
    RefundDispatcher,
    RefundProcessor,
    RefundProcessorError,
    StripeRefundProcessor,
)
from .refund_ledger import RefundLedger
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import StripeService, StripeServiceError, get_stripe_service
from .webhook_handler import RefundWebhookHandler

__all__ = [
    "DynamoDBService",
    "TransactionCancelledError",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "Clock",
    "FixedClock",
    "SystemClock",
    "QuoteStore",
    "BookingStore",
    "RefundLedger",
    "DEFAULT_RULES",
    "PolicyTable",
    "RefundCalculator",
    "QuoteAcceptanceCoordinator",
    "CancellationCoordinator",
    "RefundDispatcher",
    "RefundProcessor",
    "RefundProcessorError",
    "StripeRefundProcessor",
    "RefundWebhookHandler",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "StripeService",
    "StripeServiceError",
    "get_stripe_service",
]
