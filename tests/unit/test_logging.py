"""Unit tests for correlation IDs and structured log helpers."""

import logging
from typing import Generator

import pytest

from quote_booking.utils.logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    correlation_scope,
    get_correlation_id,
    get_logger,
    log_processor_event,
    log_quote_operation,
    log_refund_operation,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def fresh_correlation_id() -> Generator[None, None, None]:
    clear_correlation_id()
    yield
    clear_correlation_id()


def make_record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)


class TestCorrelationId:
    def test_set_and_get(self) -> None:
        assert set_correlation_id("corr-123") == "corr-123"
        assert get_correlation_id() == "corr-123"

    def test_generated_when_absent(self) -> None:
        cid = set_correlation_id()

        assert cid
        assert get_correlation_id() == cid

    def test_filter_stamps_records(self) -> None:
        set_correlation_id("corr-456")
        record = make_record()

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "corr-456"  # type: ignore[attr-defined]

    def test_formatter_prefixes_message(self) -> None:
        formatter = StructuredFormatter("%(message)s")

        assert formatter.format(make_record()) == "[no-correlation-id] hello"

    def test_scope_binds_and_restores(self) -> None:
        with correlation_scope("evt_123") as cid:
            assert cid == "evt_123"
            assert get_correlation_id() == "evt_123"

        assert get_correlation_id() is None

    def test_scope_keeps_existing_id(self) -> None:
        set_correlation_id("corr-outer")

        with correlation_scope("evt_123") as cid:
            assert cid == "corr-outer"

        assert get_correlation_id() == "corr-outer"

    def test_get_logger_adds_filter_once(self) -> None:
        logger = get_logger("quote_booking.tests.logging")
        get_logger("quote_booking.tests.logging")

        filters = [f for f in logger.filters if isinstance(f, CorrelationIdFilter)]
        assert len(filters) == 1


class TestLogHelpers:
    def test_quote_operation_message(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("quote_booking.tests.quotes")

        with caplog.at_level(logging.INFO):
            log_quote_operation(
                logger, "accept_quote", request_id="REQ-1", quote_id="QTE-1", status="accepted"
            )

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == (
            "Quote operation: accept_quote | request_id=REQ-1 | quote_id=QTE-1 | status=accepted"
        )

    def test_refund_operation_error_level(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("quote_booking.tests.refunds")

        with caplog.at_level(logging.INFO):
            log_refund_operation(
                logger, "cancel_booking", booking_id="BKG-1", amount_cents=0, error="CONFLICT"
            )

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "amount_cents=0" in record.getMessage()

    @pytest.mark.parametrize(
        ("result", "level"),
        [("success", logging.INFO), ("duplicate", logging.WARNING), ("error", logging.ERROR)],
    )
    def test_processor_event_level(
        self, caplog: pytest.LogCaptureFixture, result: str, level: int
    ) -> None:
        logger = get_logger("quote_booking.tests.webhooks")

        with caplog.at_level(logging.INFO):
            log_processor_event(logger, "refund.updated", "evt_1", booking_id="BKG-1", result=result)

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.getMessage().startswith("Webhook event: refund.updated (evt_1)")
