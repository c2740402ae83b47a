"""Identifier generation.

Quote, booking and refund IDs are derived from their parent reference so
that a second record for the same parent collides on the primary key and
is rejected by an ``attribute_not_exists`` condition.
"""

import datetime as dt
import uuid

_NAMESPACE = uuid.UUID("6f1c2a8e-4b7d-4f0e-9c3a-2d5e8b1f7a40")


def _derived(prefix: str, *parts: str) -> str:
    digest = uuid.uuid5(_NAMESPACE, ":".join(parts)).hex[:12].upper()
    return f"{prefix}-{digest}"


def new_request_id() -> str:
    """Generate a unique service request ID like REQ-2026-1A2B3C4D."""
    year = dt.datetime.now(dt.UTC).year
    return f"REQ-{year}-{uuid.uuid4().hex[:8].upper()}"


def quote_id_for(request_id: str, provider_id: str) -> str:
    """One quote per provider per request."""
    return _derived("QTE", request_id, provider_id)


def booking_id_for(quote_id: str) -> str:
    """One booking per quote."""
    return _derived("BKG", quote_id)


def refund_id_for(booking_id: str) -> str:
    """One refund record per booking."""
    return _derived("RFD", booking_id)
