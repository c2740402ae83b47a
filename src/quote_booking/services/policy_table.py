"""Cancellation policy table: tier -> ordered refund rules.

Default schedule:
- Flexible: 24h+ before the event 100%, otherwise 50%
- Moderate: 7 days+ 100%, 72h+ 50%, otherwise nothing
- Strict: 7 days+ 100%, 48h+ 50%, otherwise nothing

The table can be replaced through REFUND_POLICY_RULES, a JSON object
mapping tier name to ``[[minimum_hours, percentage], ...]``.
"""

import json
import os
from collections.abc import Mapping, Sequence

from quote_booking.models import PolicyTier, RefundRule

DEFAULT_RULES: dict[PolicyTier, tuple[RefundRule, ...]] = {
    PolicyTier.FLEXIBLE: (
        RefundRule(minimum_hours=24, percentage=100),
        RefundRule(minimum_hours=0, percentage=50),
    ),
    PolicyTier.MODERATE: (
        RefundRule(minimum_hours=168, percentage=100),
        RefundRule(minimum_hours=72, percentage=50),
        RefundRule(minimum_hours=0, percentage=0),
    ),
    PolicyTier.STRICT: (
        RefundRule(minimum_hours=168, percentage=100),
        RefundRule(minimum_hours=48, percentage=50),
        RefundRule(minimum_hours=0, percentage=0),
    ),
}


class PolicyTable:
    """Lookup of refund rules per policy tier.

    Rules are kept sorted by ``minimum_hours`` descending so the first
    satisfied rule is the most specific one.
    """

    def __init__(
        self,
        rules: Mapping[PolicyTier, Sequence[RefundRule]] | None = None,
        default_tier: PolicyTier = PolicyTier.FLEXIBLE,
    ) -> None:
        source = DEFAULT_RULES if rules is None else rules
        self._rules: dict[PolicyTier, tuple[RefundRule, ...]] = {}
        for tier, tier_rules in source.items():
            thresholds = [r.minimum_hours for r in tier_rules]
            if len(set(thresholds)) != len(thresholds):
                raise ValueError(f"Duplicate thresholds in {tier.value} policy: {thresholds}")
            self._rules[tier] = tuple(
                sorted(tier_rules, key=lambda r: r.minimum_hours, reverse=True)
            )
        if default_tier not in self._rules:
            raise ValueError(f"Default tier {default_tier.value} has no rules")
        self.default_tier = default_tier

    @classmethod
    def from_env(cls) -> "PolicyTable":
        """Build the table from REFUND_POLICY_RULES and DEFAULT_POLICY_TIER."""
        default_tier = PolicyTier(os.getenv("DEFAULT_POLICY_TIER", PolicyTier.FLEXIBLE.value))
        raw = os.getenv("REFUND_POLICY_RULES")
        if not raw:
            return cls(default_tier=default_tier)

        parsed = json.loads(raw)
        rules = {
            PolicyTier(tier): [
                RefundRule(minimum_hours=int(hours), percentage=int(pct))
                for hours, pct in entries
            ]
            for tier, entries in parsed.items()
        }
        return cls(rules, default_tier=default_tier)

    def rules_for(self, tier: PolicyTier) -> tuple[RefundRule, ...]:
        """Rules for a tier, most specific (largest threshold) first."""
        try:
            return self._rules[tier]
        except KeyError:
            raise KeyError(f"No refund rules configured for tier {tier.value}") from None

    def resolve(self, tier: PolicyTier | None) -> PolicyTier:
        """Tier to apply when a provider may not have chosen one."""
        return tier if tier is not None else self.default_tier

    def describe(self, tier: PolicyTier) -> str:
        """Human-readable description of a tier's schedule."""
        lines = [f"{tier.value.capitalize()} cancellation policy:"]
        rules = self.rules_for(tier)
        for rule in rules:
            if rule.minimum_hours == 0:
                window = "Less than the above"
            elif rule.minimum_hours % 24 == 0:
                days = rule.minimum_hours // 24
                window = f"{days}+ day{'s' if days > 1 else ''} before"
            else:
                window = f"{rule.minimum_hours}+ hours before"
            lines.append(f"• {window}: {rule.percentage}% refund")
        if not rules or rules[-1].minimum_hours > 0:
            lines.append("• Less than the above: no refund")
        lines.append("• Force majeure: full refund")
        return "\n".join(lines)
