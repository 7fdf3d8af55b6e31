"""Appointment status graph and ledger-driven automatic transitions."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from src.core.exceptions import AlreadyFinalizedError, InvalidTransitionError
from src.modules.appointments.ledger import LedgerEntry, has_deposit_cleared, is_fully_paid
from src.shared.enums import AppointmentStatus

S = AppointmentStatus

# The graph is acyclic; COMPLETED and CANCELLED are sinks.
ALLOWED_TRANSITIONS: dict[AppointmentStatus, tuple[AppointmentStatus, ...]] = {
    S.PROPOSED: (S.ACCEPTED, S.CANCELLED),
    S.ACCEPTED: (S.CONFIRMED, S.CANCELLED),
    S.CONFIRMED: (S.PAID, S.CANCELLED),
    S.PAID: (S.COMPLETED, S.CANCELLED),
    S.COMPLETED: (),
    S.CANCELLED: (),
}

# Statuses whose ledger may still receive payments.
PAYABLE_STATUSES = (S.ACCEPTED, S.CONFIRMED)


def get_allowed_transitions(current: AppointmentStatus) -> tuple[AppointmentStatus, ...]:
    return ALLOWED_TRANSITIONS.get(current, ())


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in get_allowed_transitions(current)


def ensure_transition(current: AppointmentStatus, new: AppointmentStatus) -> None:
    """Raise if `current -> new` is not an edge of the status graph."""
    if current.is_terminal:
        raise AlreadyFinalizedError(current.value, f"move to {new.value}")
    allowed = get_allowed_transitions(current)
    if new not in allowed:
        raise InvalidTransitionError(current.value, new.value, [status.value for status in allowed])


def settle_status(
    current: AppointmentStatus,
    *,
    price: Decimal,
    deposit_required: bool,
    deposit_amount: Decimal | None,
    records: Iterable[LedgerEntry],
) -> list[AppointmentStatus]:
    """Return the chain of automatic transitions the ledger justifies from `current`.

    Pure function of the status and the full ledger, so replaying it yields the
    same chain. ACCEPTED advances to CONFIRMED once no deposit is owed and
    CONFIRMED advances to PAID once the price is covered.
    """
    records = list(records)
    chain: list[AppointmentStatus] = []
    status = current
    if status == S.ACCEPTED:
        if not deposit_required or has_deposit_cleared(deposit_amount, records):
            status = S.CONFIRMED
            chain.append(status)
    if status == S.CONFIRMED and is_fully_paid(price, records):
        status = S.PAID
        chain.append(status)
    return chain


NEXT_ACTIONS = {
    S.PROPOSED: "awaiting_response",
    S.ACCEPTED: "pay_deposit",
    S.CONFIRMED: "pay_balance",
    S.PAID: "attend",
    S.COMPLETED: "none",
    S.CANCELLED: "none",
}


def next_action(current: AppointmentStatus) -> str:
    """Hint for what the parties are expected to do next."""
    return NEXT_ACTIONS[current]


def allowed_actions(current: AppointmentStatus, *, is_proposer: bool = False) -> list[str]:
    if current == S.PROPOSED:
        return ["cancel"] if is_proposer else ["accept", "reject"]
    if current in PAYABLE_STATUSES:
        return ["pay", "cancel"]
    if current == S.PAID:
        return ["complete", "cancel"]
    return []


def can_be_cancelled(current: AppointmentStatus) -> bool:
    return can_transition(current, S.CANCELLED)
