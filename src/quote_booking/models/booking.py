"""Booking model for engagements created from accepted quotes."""

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from .enums import BookingStatus, PolicyTier


class Booking(BaseModel):
    """The confirmed engagement created when a quote is accepted.

    The amount is copied from the quote at acceptance time and never
    changes afterwards; refunds are recorded separately.
    """

    model_config = ConfigDict(strict=True)

    booking_id: str = Field(..., description="Unique booking ID, derived from the quote")
    quote_id: str = Field(..., description="Originating quote")
    request_id: str = Field(..., description="Service request the quote answered")
    client_id: str = Field(..., description="Client reference")
    provider_id: str = Field(..., description="Provider reference")
    amount: int = Field(..., ge=0, description="Booked amount in cents")
    currency: str = Field(default="EUR", description="Currency code")
    event_at: AwareDatetime = Field(..., description="Scheduled time of the service")
    policy_tier: PolicyTier | None = Field(
        default=None, description="Cancellation policy copied from the quote"
    )
    status: BookingStatus = Field(default=BookingStatus.PENDING, description="Booking status")
    created_at: AwareDatetime = Field(..., description="Creation timestamp (UTC)")
    accepted_by: str = Field(..., description="Actor who accepted the quote")
    payment_reference: str | None = Field(
        default=None,
        description="External payment reference (PaymentIntent ID for Stripe)",
        examples=["pi_3ABC123DEF456"],
    )
    cancelled_at: AwareDatetime | None = Field(default=None, description="Cancellation timestamp")
    cancelled_by: str | None = Field(default=None, description="Actor who cancelled")
    cancellation_reason: str | None = Field(default=None, description="Stated reason")
