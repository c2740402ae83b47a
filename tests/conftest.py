"""Pytest configuration and fixtures for quote-booking engine tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto
- A controllable clock
- Stores and coordinators wired against the mocked tables
- Sample requests, quotes and bookings
"""

import datetime as dt
import os
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-quote-booking")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from quote_booking.models import Booking, PolicyTier, Quote, QuoteCreate  # noqa: E402
from quote_booking.services import (  # noqa: E402
    BookingStore,
    CancellationCoordinator,
    DynamoDBService,
    FixedClock,
    QuoteAcceptanceCoordinator,
    QuoteStore,
    RefundCalculator,
    RefundDispatcher,
    RefundLedger,
    RefundWebhookHandler,
    get_dynamodb_service,
)

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]

# Reference instant shared by the clock fixture and sample data
NOW = dt.datetime(2026, 6, 1, 12, 0, tzinfo=dt.UTC)


# === Singleton Fixtures ===


@pytest.fixture(autouse=True)
def reset_dynamodb_singleton() -> Generator[None, None, None]:
    """Reset DynamoDB singleton before and after each test.

    This ensures tests using mock_aws get a fresh service instance
    inside the mock context rather than reusing a singleton from
    a previous test or non-mocked context.
    """
    from quote_booking.services.dynamodb import reset_dynamodb_service

    reset_dynamodb_service()
    yield
    reset_dynamodb_service()


@pytest.fixture(autouse=True)
def reset_processor_singletons() -> Generator[None, None, None]:
    """Reset cached SSM and Stripe services around each test."""
    from quote_booking.services.ssm_service import SSMService, get_ssm_service
    from quote_booking.services.stripe_service import get_stripe_service

    SSMService.reset()
    get_ssm_service.cache_clear()
    get_stripe_service.cache_clear()
    yield
    SSMService.reset()
    get_ssm_service.cache_clear()
    get_stripe_service.cache_clear()


@pytest.fixture(autouse=True)
def default_policy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test against the built-in policy table."""
    monkeypatch.delenv("DEFAULT_POLICY_TIER", raising=False)
    monkeypatch.delenv("REFUND_POLICY_RULES", raising=False)


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _hash_table(name: str, key: str) -> dict[str, Any]:
    return {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all required DynamoDB tables for testing."""
    tables = [
        _hash_table("service-requests", "request_id"),
        {
            "TableName": f"{TABLE_PREFIX}-quotes",
            "KeySchema": [{"AttributeName": "quote_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "quote_id", "AttributeType": "S"},
                {"AttributeName": "request_id", "AttributeType": "S"},
                {"AttributeName": "issued_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                {
                    "IndexName": "request_id-index",
                    "KeySchema": [
                        {"AttributeName": "request_id", "KeyType": "HASH"},
                        {"AttributeName": "issued_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        _hash_table("bookings", "booking_id"),
        _hash_table("refunds", "booking_id"),
        {
            "TableName": f"{TABLE_PREFIX}-refund-events",
            "KeySchema": [
                {"AttributeName": "booking_id", "KeyType": "HASH"},
                {"AttributeName": "sequence", "KeyType": "RANGE"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "booking_id", "AttributeType": "S"},
                {"AttributeName": "sequence", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        _hash_table("processor-webhook-events", "event_id"),
    ]

    for table_config in tables:
        dynamodb_client.create_table(**table_config)


@pytest.fixture
def db(create_tables: None) -> DynamoDBService:
    """DynamoDB service bound to the mocked tables."""
    return get_dynamodb_service()


# === Engine Fixtures ===


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at NOW; tests move it explicitly."""
    return FixedClock(NOW)


@pytest.fixture
def quote_store(db: DynamoDBService, clock: FixedClock) -> QuoteStore:
    return QuoteStore(db, clock)


@pytest.fixture
def booking_store(db: DynamoDBService, clock: FixedClock) -> BookingStore:
    return BookingStore(db, clock)


@pytest.fixture
def refund_ledger(db: DynamoDBService, clock: FixedClock) -> RefundLedger:
    return RefundLedger(db, clock)


@pytest.fixture
def acceptance(
    quote_store: QuoteStore, booking_store: BookingStore, clock: FixedClock
) -> QuoteAcceptanceCoordinator:
    return QuoteAcceptanceCoordinator(quote_store, booking_store, clock)


@pytest.fixture
def mock_processor() -> MagicMock:
    """Refund processor double; reports refunds as pending by default."""
    from quote_booking.models import RefundProcessingStatus

    processor = MagicMock()
    processor.request_refund.return_value = ("re_test_123", RefundProcessingStatus.PROCESSING)
    return processor


@pytest.fixture
def dispatcher(
    refund_ledger: RefundLedger, booking_store: BookingStore, mock_processor: MagicMock
) -> RefundDispatcher:
    return RefundDispatcher(refund_ledger, booking_store, mock_processor)


@pytest.fixture
def cancellation(
    booking_store: BookingStore, refund_ledger: RefundLedger, clock: FixedClock
) -> CancellationCoordinator:
    return CancellationCoordinator(booking_store, refund_ledger, RefundCalculator(), clock)


@pytest.fixture
def webhook_handler(
    db: DynamoDBService, dispatcher: RefundDispatcher, clock: FixedClock
) -> RefundWebhookHandler:
    return RefundWebhookHandler(db, dispatcher, stripe_service=MagicMock(), clock=clock)


# === Sample Data Fixtures ===


def quote_data(
    request_id: str,
    provider_id: str,
    amount: int,
    *,
    event_at: dt.datetime | None = None,
    policy_tier: PolicyTier | None = PolicyTier.MODERATE,
    validity_days: int = 30,
) -> QuoteCreate:
    """Build a QuoteCreate with an event two weeks after NOW by default."""
    return QuoteCreate(
        request_id=request_id,
        provider_id=provider_id,
        amount=amount,
        event_at=event_at or NOW + dt.timedelta(days=14),
        policy_tier=policy_tier,
        validity_days=validity_days,
    )


@pytest.fixture
def now() -> dt.datetime:
    return NOW


@pytest.fixture
def make_quote_data() -> Callable[..., QuoteCreate]:
    """Factory for QuoteCreate payloads (see ``quote_data``)."""
    return quote_data


@pytest.fixture
def open_request_with_quotes(quote_store: QuoteStore) -> tuple[str, Quote, Quote]:
    """An open request with two quotes: A (300.00) and B (250.00)."""
    request = quote_store.open_request("client-1", "Wedding photography")
    quote_a = quote_store.issue_quote(quote_data(request.request_id, "provider-a", 30000))
    quote_b = quote_store.issue_quote(quote_data(request.request_id, "provider-b", 25000))
    return request.request_id, quote_a, quote_b


@pytest.fixture
def booking(
    acceptance: QuoteAcceptanceCoordinator,
    open_request_with_quotes: tuple[str, Quote, Quote],
) -> Booking:
    """A PENDING booking created by accepting quote A."""
    request_id, quote_a, _ = open_request_with_quotes
    return acceptance.accept_quote(request_id, quote_a.quote_id, "client-1")
