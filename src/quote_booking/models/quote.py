"""Service request and quote models.

Amounts are stored in minor currency units (cents).
"""

from datetime import datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from .enums import PolicyTier, QuoteStatus, RequestStatus


class ServiceRequest(BaseModel):
    """A client's request for a service, answered by competing quotes."""

    model_config = ConfigDict(strict=True)

    request_id: str = Field(..., description="Unique request ID")
    client_id: str = Field(..., description="Client who opened the request")
    title: str = Field(..., min_length=1, description="Short description of the service")
    status: RequestStatus = Field(
        default=RequestStatus.OPEN, description="Open until a quote is accepted"
    )
    created_at: AwareDatetime = Field(..., description="Creation timestamp (UTC)")
    closed_at: AwareDatetime | None = Field(
        default=None, description="When a quote was accepted"
    )


class Quote(BaseModel):
    """A priced offer from one provider against one service request."""

    model_config = ConfigDict(strict=True)

    quote_id: str = Field(..., description="Unique quote ID")
    request_id: str = Field(..., description="Reference to ServiceRequest")
    provider_id: str = Field(..., description="Provider issuing the quote")
    client_id: str = Field(..., description="Client the quote is addressed to")
    amount: int = Field(..., ge=0, description="Quoted amount in cents")
    currency: str = Field(default="EUR", description="Currency code")
    issued_at: AwareDatetime = Field(..., description="When the quote was sent")
    expires_at: AwareDatetime | None = Field(
        default=None, description="End of the validity window (exclusive)"
    )
    event_at: AwareDatetime = Field(..., description="Scheduled time of the service")
    policy_tier: PolicyTier | None = Field(
        default=None,
        description="Provider's cancellation policy at the time of quoting",
    )
    status: QuoteStatus = Field(default=QuoteStatus.SENT, description="Quote status")
    viewed_at: AwareDatetime | None = Field(default=None, description="First read by client")
    decided_at: AwareDatetime | None = Field(
        default=None, description="When the quote was accepted, refused or expired"
    )
    decided_by: str | None = Field(
        default=None, description="Actor who accepted or refused the quote"
    )

    def is_expired(self, now: datetime) -> bool:
        """Check whether the validity window has closed at ``now``."""
        return self.expires_at is not None and self.expires_at <= now

    def effective_status(self, now: datetime) -> QuoteStatus:
        """Stored status adjusted for lazy expiry.

        An open quote whose validity window has closed is reported as
        EXPIRED even before the stored status has been swept.
        """
        if self.status.is_open and self.is_expired(now):
            return QuoteStatus.EXPIRED
        return self.status


class QuoteCreate(BaseModel):
    """Data a provider supplies to quote a service request."""

    model_config = ConfigDict(strict=True)

    request_id: str
    provider_id: str
    amount: int = Field(..., ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    event_at: AwareDatetime
    validity_days: int = Field(default=30, ge=1)
    policy_tier: PolicyTier | None = None
