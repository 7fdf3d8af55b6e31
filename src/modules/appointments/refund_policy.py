"""Time-window cancellation refund policy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.modules.appointments.ledger import to_money
from src.shared.enums import RefundTier

FULL_REFUND_HOURS = 48
PARTIAL_REFUND_HOURS = 24

REFUND_RATES = {
    RefundTier.FULL: Decimal("1.00"),
    RefundTier.PARTIAL: Decimal("0.50"),
    RefundTier.NONE: Decimal("0"),
}

TIER_DESCRIPTIONS = {
    RefundTier.FULL: "Full refund: cancelled at least 48 hours before the appointment.",
    RefundTier.PARTIAL: "50% refund: cancelled between 24 and 48 hours before the appointment.",
    RefundTier.NONE: "No refund: cancelled less than 24 hours before the appointment.",
}


@dataclass(frozen=True)
class RefundDecision:
    amount: Decimal
    tier: RefundTier
    hours_until_appointment: float

    @property
    def description(self) -> str:
        return TIER_DESCRIPTIONS[self.tier]


def hours_until(scheduled_start: datetime, now: datetime) -> float:
    return (scheduled_start - now).total_seconds() / 3600


def tier_for(hours_until_appointment: float) -> RefundTier:
    # Past-due cancellations fall through to NONE like any other late cancellation.
    if hours_until_appointment >= FULL_REFUND_HOURS:
        return RefundTier.FULL
    if hours_until_appointment >= PARTIAL_REFUND_HOURS:
        return RefundTier.PARTIAL
    return RefundTier.NONE


def calculate_refund(now: datetime, scheduled_start: datetime, paid: Decimal) -> RefundDecision:
    """Map cancellation timing and the amount already paid to a refund.

    Args:
        now: Moment of cancellation.
        scheduled_start: Start of the appointment being cancelled.
        paid: Sum of completed payments on the ledger.

    Returns:
        RefundDecision with the refund amount quantized to cents.
    """
    hours = hours_until(scheduled_start, now)
    tier = tier_for(hours)
    amount = to_money(Decimal(paid) * REFUND_RATES[tier])
    return RefundDecision(amount=amount, tier=tier, hours_until_appointment=hours)
