"""Payment processor webhook event model for idempotency and auditing."""

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class ProcessorWebhookEvent(BaseModel):
    """Log of a received refund webhook event.

    Used for:
    - Idempotency: prevent processing same event twice
    - Auditing: track all webhook deliveries
    """

    model_config = ConfigDict(strict=True)

    event_id: str = Field(
        ...,
        description="Stripe event ID (evt_xxx)",
        examples=["evt_1ABC123DEF456"],
    )
    event_type: str = Field(
        ...,
        description="Stripe event type",
        examples=["refund.updated", "refund.failed"],
    )
    processed_at: AwareDatetime = Field(..., description="When the event was processed")
    payload_hash: str = Field(..., description="SHA-256 hash of payload")
    booking_id: str | None = Field(
        default=None, description="Booking ID from refund metadata"
    )
    refund_id: str | None = Field(default=None, description="Internal refund ID")
    processing_result: str = Field(
        default="success",
        description="Result of processing: success, duplicate, skipped, error",
    )
    error_message: str | None = Field(default=None)
