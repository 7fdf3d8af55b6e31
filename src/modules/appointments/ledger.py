"""Read-only views over an appointment's payment ledger."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from src.shared.enums import PaymentStatus

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_DEPOSIT_RATE = Decimal("0.30")


class LedgerEntry(Protocol):
    amount: Decimal
    status: PaymentStatus


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def default_deposit(price: Decimal) -> Decimal:
    return to_money(Decimal(price) * DEFAULT_DEPOSIT_RATE)


def paid_amount(records: Iterable[LedgerEntry]) -> Decimal:
    """Sum of COMPLETED entries; pending, failed and refunded entries never count."""
    total = ZERO
    for record in records:
        if record.status == PaymentStatus.COMPLETED:
            total += Decimal(record.amount)
    return to_money(total)


def outstanding(price: Decimal, records: Iterable[LedgerEntry]) -> Decimal:
    remaining = Decimal(price) - paid_amount(records)
    return to_money(max(remaining, ZERO))


def has_deposit_cleared(deposit_amount: Decimal | None, records: Iterable[LedgerEntry]) -> bool:
    """True once cumulative completed payments cover the deposit, whatever their order or tags."""
    return paid_amount(records) >= Decimal(deposit_amount or ZERO)


def deposit_remaining(deposit_amount: Decimal | None, records: Iterable[LedgerEntry]) -> Decimal:
    remaining = Decimal(deposit_amount or ZERO) - paid_amount(records)
    return to_money(max(remaining, ZERO))


def is_fully_paid(price: Decimal, records: Iterable[LedgerEntry]) -> bool:
    return paid_amount(records) >= Decimal(price)
