"""Refund models: calculator output, persisted record and audit events."""

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from .enums import PolicyTier, RefundProcessingStatus


class RefundRule(BaseModel):
    """One time window of a policy tier."""

    model_config = ConfigDict(strict=True, frozen=True)

    minimum_hours: int = Field(..., ge=0, description="Hours before the event, inclusive")
    percentage: int = Field(..., ge=0, le=100, description="Refund percentage")


class RefundComputation(BaseModel):
    """Result of a refund calculation."""

    model_config = ConfigDict(strict=True, frozen=True)

    percentage: int = Field(..., ge=0, le=100)
    amount: int = Field(..., ge=0, description="Refund amount in cents")
    hours_until_event: float = Field(..., ge=0)
    policy_tier: PolicyTier
    force_majeure: bool
    rule: RefundRule | None = Field(
        default=None, description="Matched rule, None for force majeure or no match"
    )


class RefundRecord(BaseModel):
    """The refund decision for one cancelled booking.

    The decision fields never change once written; only the processing
    fields follow the payment processor's handling.
    """

    model_config = ConfigDict(strict=True)

    refund_id: str = Field(..., description="Unique refund ID")
    booking_id: str = Field(..., description="Cancelled booking, at most one record each")
    original_amount: int = Field(..., ge=0, description="Booked amount in cents")
    currency: str = Field(default="EUR", description="Currency code")
    refund_percentage: int = Field(..., ge=0, le=100)
    refund_amount: int = Field(..., ge=0, description="Refund amount in cents")
    policy_tier: PolicyTier = Field(..., description="Tier applied")
    force_majeure: bool = Field(default=False)
    reason: str | None = Field(default=None, description="Cancellation reason")
    computed_at: AwareDatetime = Field(..., description="When the refund was computed")
    processing_status: RefundProcessingStatus = Field(
        default=RefundProcessingStatus.PENDING
    )
    processor_reference: str | None = Field(
        default=None,
        description="Processor refund ID (re_xxx for Stripe)",
        examples=["re_3ABC123DEF456"],
    )
    failure_reason: str | None = Field(default=None)
    attempts: int = Field(default=0, ge=0, description="Submissions to the processor")
    updated_at: AwareDatetime = Field(..., description="Last processing change")


class RefundLedgerEvent(BaseModel):
    """Append-only audit entry for a refund."""

    model_config = ConfigDict(strict=True)

    booking_id: str
    sequence: str = Field(..., description="Sort key: ISO timestamp plus entry suffix")
    event_type: str = Field(..., examples=["decision", "status_change"])
    refund_id: str
    processing_status: RefundProcessingStatus
    actor_id: str | None = None
    refund_amount: int | None = None
    refund_percentage: int | None = None
    detail: str | None = None
    recorded_at: AwareDatetime
