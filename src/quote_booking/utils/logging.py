"""Structured logging with correlation IDs.

Every record passing through a logger from ``get_logger`` carries a
``correlation_id`` attribute taken from the current context. The
``log_*`` helpers write one pipe-separated line per engine operation and
pass the same fields as ``extra`` for structured handlers.

Usage:
    from quote_booking.utils.logging import get_logger, set_correlation_id

    # At the edge that calls into the engine:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    logger = get_logger(__name__)
    log_refund_operation(logger, "cancel_booking", booking_id="BKG-1A2B3C")
"""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

NO_CORRELATION_ID = "no-correlation-id"

# Thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current context, generating one if needed.

    Returns:
        The correlation ID now in effect
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Use a correlation ID for the duration of a block, then restore the previous one.

    An ID already bound to the context wins over ``correlation_id``, so a
    caller's trace is never replaced by a nested scope.
    """
    current = _correlation_id.get()
    token = _correlation_id.set(current or correlation_id or generate_correlation_id())
    try:
        yield _correlation_id.get() or NO_CORRELATION_ID
    finally:
        _correlation_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Stamps ``correlation_id`` on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefixes formatted records with ``[correlation_id]``."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return f"[{record.correlation_id}] {super().format(record)}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def _context(base: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """Merge the fields that carry a value into ``base``, keeping their order."""
    context = dict(base)
    context.update({key: value for key, value in fields.items() if value is not None})
    return context


def _emit(logger: logging.Logger, level: int, parts: list[str], context: dict[str, Any]) -> None:
    logger.log(level, " | ".join(parts), extra=context)


def log_quote_operation(
    logger: logging.Logger,
    operation: str,
    *,
    request_id: str | None = None,
    quote_id: str | None = None,
    booking_id: str | None = None,
    actor_id: str | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a quote lifecycle operation.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "accept_quote", "expire_stale_quotes")
        request_id: Service request ID if available
        quote_id: Quote ID if available
        booking_id: Booking ID if one was created
        actor_id: Acting user
        status: Resulting status
        error: Error code if the operation failed; logs at ERROR
        **extra: Additional context fields
    """
    fields = {
        "request_id": request_id,
        "quote_id": quote_id,
        "booking_id": booking_id,
        "actor_id": actor_id,
        "status": status,
        "error": error,
        **extra,
    }
    context = _context({"operation": operation}, fields)
    parts = [f"Quote operation: {operation}"]
    parts.extend(f"{key}={value}" for key, value in context.items() if key != "operation")
    _emit(logger, logging.ERROR if error else logging.INFO, parts, context)


def log_refund_operation(
    logger: logging.Logger,
    operation: str,
    *,
    booking_id: str | None = None,
    refund_id: str | None = None,
    amount_cents: int | None = None,
    percentage: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a cancellation or refund operation.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "cancel_booking", "submit_refund")
        booking_id: Booking ID if available
        refund_id: Refund ID if available
        amount_cents: Refund amount in cents; zero is logged
        percentage: Refund percentage if relevant
        status: Processing status
        error: Error code or message if the operation failed; logs at ERROR
        **extra: Additional context fields
    """
    fields = {
        "booking_id": booking_id,
        "refund_id": refund_id,
        "amount_cents": amount_cents,
        "percentage": percentage,
        "status": status,
        "error": error,
        **extra,
    }
    context = _context({"operation": operation}, fields)
    parts = [f"Refund operation: {operation}"]
    parts.extend(f"{key}={value}" for key, value in context.items() if key != "operation")
    _emit(logger, logging.ERROR if error else logging.INFO, parts, context)


def log_processor_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    booking_id: str | None = None,
    refund_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payment processor webhook event.

    Errors log at ERROR, duplicates and skipped events at WARNING.
    """
    context = _context(
        {"event_type": event_type, "event_id": event_id},
        {
            "booking_id": booking_id,
            "refund_id": refund_id,
            "result": result,
            "error": error,
            **extra,
        },
    )

    parts = [f"Webhook event: {event_type} ({event_id})"]
    if result:
        parts.append(f"result={result}")
    if booking_id:
        parts.append(f"booking={booking_id}")
    if error:
        parts.append(f"error={error}")

    if result == "error":
        level = logging.ERROR
    elif result in ("duplicate", "skipped"):
        level = logging.WARNING
    else:
        level = logging.INFO
    _emit(logger, level, parts, context)
