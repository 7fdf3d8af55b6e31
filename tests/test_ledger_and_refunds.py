from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import pytest

from src.modules.appointments.ledger import (
    default_deposit,
    deposit_remaining,
    has_deposit_cleared,
    is_fully_paid,
    outstanding,
    paid_amount,
    to_money,
)
from src.modules.appointments.refund_policy import calculate_refund, tier_for
from src.shared.enums import PaymentStatus, RefundTier


@dataclass
class Entry:
    amount: Decimal
    status: PaymentStatus


def test_paid_amount_counts_only_completed_entries():
    records = [
        Entry(Decimal("60.00"), PaymentStatus.COMPLETED),
        Entry(Decimal("40.00"), PaymentStatus.PENDING),
        Entry(Decimal("25.00"), PaymentStatus.FAILED),
        Entry(Decimal("30.00"), PaymentStatus.REFUNDED),
        Entry(Decimal("15.50"), PaymentStatus.COMPLETED),
    ]
    assert paid_amount(records) == Decimal("75.50")
    assert outstanding(Decimal("200.00"), records) == Decimal("124.50")


def test_outstanding_never_goes_negative():
    records = [Entry(Decimal("250.00"), PaymentStatus.COMPLETED)]
    assert outstanding(Decimal("200.00"), records) == Decimal("0.00")
    assert is_fully_paid(Decimal("200.00"), records)


def test_deposit_cleared_is_order_independent():
    records = [
        Entry(Decimal("20.00"), PaymentStatus.COMPLETED),
        Entry(Decimal("40.00"), PaymentStatus.COMPLETED),
    ]
    assert has_deposit_cleared(Decimal("60.00"), records)
    assert has_deposit_cleared(Decimal("60.00"), list(reversed(records)))
    assert not has_deposit_cleared(Decimal("60.01"), records)
    assert deposit_remaining(Decimal("75.00"), records) == Decimal("15.00")


def test_default_deposit_is_thirty_percent_rounded_to_cents():
    assert default_deposit(Decimal("200.00")) == Decimal("60.00")
    assert default_deposit(Decimal("99.99")) == Decimal("30.00")
    assert to_money("0.005") == Decimal("0.01")


@pytest.mark.parametrize(
    ("hours", "tier"),
    [
        (72, RefundTier.FULL),
        (48.0, RefundTier.FULL),
        (47.999, RefundTier.PARTIAL),
        (24.0, RefundTier.PARTIAL),
        (23.999, RefundTier.NONE),
        (0, RefundTier.NONE),
        (-5, RefundTier.NONE),
    ],
)
def test_refund_tier_boundaries(hours, tier):
    assert tier_for(hours) == tier


def test_partial_refund_thirty_hours_before(now):
    decision = calculate_refund(now, now + timedelta(hours=30), Decimal("100.00"))
    assert decision.tier == RefundTier.PARTIAL
    assert decision.amount == Decimal("50.00")
    assert "50%" in decision.description


def test_past_due_cancellation_gets_no_refund(now):
    decision = calculate_refund(now, now - timedelta(hours=3), Decimal("80.00"))
    assert decision.tier == RefundTier.NONE
    assert decision.amount == Decimal("0.00")
    assert decision.hours_until_appointment == pytest.approx(-3)


def test_refund_amount_is_quantized(now):
    decision = calculate_refund(now, now + timedelta(hours=30), Decimal("33.33"))
    assert decision.amount == Decimal("16.67")
