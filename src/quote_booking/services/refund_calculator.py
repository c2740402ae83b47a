"""Refund calculator for cancelled bookings.

Applies the booking's policy tier to the time left before the event:
- Force majeure: full refund (100%), regardless of tier or timing
- Otherwise: the rule with the largest threshold still satisfied wins
- No satisfied rule: no refund (0%)

All amounts are in cents. Fractional cents are rounded half-up.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal

from quote_booking.models import PolicyTier, RefundComputation

from .policy_table import PolicyTable

FULL_REFUND_PERCENT = 100
NO_REFUND_PERCENT = 0


def round_half_up(amount: Decimal) -> int:
    """Round to the smallest currency unit, halves away from zero."""
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def apply_percentage(original_amount: int, percentage: int) -> int:
    """Return ``original_amount * percentage / 100`` in cents, rounded half-up."""
    return round_half_up(Decimal(original_amount) * Decimal(percentage) / Decimal(100))


class RefundCalculator:
    """Pure refund computation over a PolicyTable.

    Identical arguments always give identical results, so a stored refund
    can be recomputed for audit.
    """

    def __init__(self, policy_table: PolicyTable | None = None) -> None:
        self.policy_table = policy_table or PolicyTable.from_env()

    def compute_refund(
        self,
        policy_tier: PolicyTier,
        original_amount: int,
        event_at: dt.datetime,
        cancelled_at: dt.datetime,
        force_majeure: bool = False,
    ) -> RefundComputation:
        """Calculate the refund for a cancellation.

        Args:
            policy_tier: Tier applied to the booking
            original_amount: Booked amount in cents
            event_at: Scheduled time of the service
            cancelled_at: Time of the cancellation
            force_majeure: Whether a force-majeure claim was accepted

        Returns:
            RefundComputation with percentage, amount and matched rule
        """
        if original_amount < 0:
            raise ValueError(f"original_amount must be non-negative, got {original_amount}")

        # Cancelling after the event counts as zero hours of notice
        hours_until_event = max((event_at - cancelled_at).total_seconds() / 3600, 0.0)

        if force_majeure:
            return RefundComputation(
                percentage=FULL_REFUND_PERCENT,
                amount=original_amount,
                hours_until_event=hours_until_event,
                policy_tier=policy_tier,
                force_majeure=True,
            )

        matched = next(
            (
                rule
                for rule in self.policy_table.rules_for(policy_tier)
                if rule.minimum_hours <= hours_until_event
            ),
            None,
        )
        percentage = matched.percentage if matched else NO_REFUND_PERCENT

        return RefundComputation(
            percentage=percentage,
            amount=apply_percentage(original_amount, percentage),
            hours_until_event=hours_until_event,
            policy_tier=policy_tier,
            force_majeure=False,
            rule=matched,
        )
