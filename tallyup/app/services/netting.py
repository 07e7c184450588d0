"""
services/netting.py — Pairwise debt netting and member balance aggregation.

This module holds the arithmetic behind every balance the API reports.
It has no Flask or SQLAlchemy imports: callers hand it records that are
already loaded, and it returns fresh values on every call.

Records are duck-typed so ORM rows and test doubles both work:
  expense:    .paid_by_user_id, .splits -> [.user_id, .amount]
  settlement: .paid_by_user_id, .paid_to_user_id, .amount

Canonical pair order:
  Every unordered pair {a, b} is stored under (min(a, b), max(a, b)) using
  the ids' natural `<` ordering (integers numerically, strings
  lexicographically). Ids in one call must be mutually comparable. The value
  stored for (u1, u2) is the signed net flow u1 -> u2: positive means u1 owes
  u2, negative means u2 owes u1.

Tolerance:
  A pair whose absolute net is below TOLERANCE (one cent) is settled and is
  not reported. A residual of exactly one cent is reported.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Hashable, Iterable

TOLERANCE = Decimal("0.01")

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class Debt:
    """A resolved amount that from_user_id owes to_user_id. amount >= TOLERANCE."""

    from_user_id: Hashable
    to_user_id: Hashable
    amount: Decimal

    def involves(self, user_id) -> bool:
        return user_id in (self.from_user_id, self.to_user_id)

    def to_dict(self) -> dict:
        return {
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "amount": format_amount(self.amount),
        }


@dataclass(frozen=True)
class MemberBalance:
    """Net position of one member. Positive is owed money, negative owes money."""

    user_id: Hashable
    net_balance: Decimal

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "net_balance": format_amount(self.net_balance),
        }


# ── Helpers ────────────────────────────────────────────────────────────────

def to_decimal(value) -> Decimal:
    """
    Coerces a monetary value to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def format_amount(value) -> str:
    """Serialises an amount with exactly two decimal places, e.g. "10.50"."""
    quantized = to_decimal(value).quantize(_CENT)
    if quantized == _ZERO:
        # Avoid "-0.00" for tiny negative residuals.
        quantized = _ZERO.quantize(_CENT)
    return str(quantized)


def pair_key(a, b) -> tuple:
    """Returns the canonical (low, high) ordering of two member ids."""
    return (a, b) if a < b else (b, a)


def _add_flow(accumulator: dict, debtor, creditor, amount: Decimal) -> None:
    """Records that debtor owes creditor `amount` (negative amounts repay)."""
    if debtor == creditor:
        return

    key = pair_key(debtor, creditor)
    if debtor < creditor:
        accumulator[key] += amount
    else:
        accumulator[key] -= amount


# ── Pairwise netting ───────────────────────────────────────────────────────

def net_pair_balances(
        expenses: Iterable,
        settlements: Iterable,
) -> dict[tuple, Decimal]:
    """
    Folds expenses and settlements into signed per-pair net flows.

    Each split owes its expense's payer the split amount; a split belonging
    to the payer is skipped. Each settlement is a repayment, applied as the
    negation of a debt from its payer to its recipient.

    Returns {(u1, u2): net} with u1 < u2, including pairs that net to zero.
    """
    accumulator: dict[tuple, Decimal] = defaultdict(Decimal)

    for expense in expenses:
        payer_id = expense.paid_by_user_id
        for split in expense.splits:
            _add_flow(accumulator, split.user_id, payer_id, to_decimal(split.amount))

    for settlement in settlements:
        _add_flow(
            accumulator,
            settlement.paid_by_user_id,
            settlement.paid_to_user_id,
            -to_decimal(settlement.amount),
        )

    return dict(accumulator)


def compute_debts(expenses: Iterable, settlements: Iterable) -> list[Debt]:
    """
    Produces the outstanding debts for one group's history.

    At most one Debt per unordered pair, never a self-debt, and every amount
    is at least TOLERANCE. The order of the returned list is not part of the
    contract; callers that display it sort first.
    """
    debts: list[Debt] = []

    for (u1, u2), net in net_pair_balances(expenses, settlements).items():
        if abs(net) < TOLERANCE:
            continue
        if net > 0:
            debts.append(Debt(from_user_id=u1, to_user_id=u2, amount=net))
        else:
            debts.append(Debt(from_user_id=u2, to_user_id=u1, amount=-net))

    return debts


# ── Member aggregation ─────────────────────────────────────────────────────

def aggregate_member_balances(
        debts: Iterable[Debt],
        member_ids: Iterable,
) -> list[MemberBalance]:
    """
    Converts debts into one signed balance per roster member.

    The creditor of each debt gains the amount and the debtor loses it.
    Members with no debts keep Decimal("0"). Ids that appear in debts but
    not in member_ids (e.g. a removed member) get no row.

    Rows come back in roster order.
    """
    roster = list(dict.fromkeys(member_ids))
    totals: dict = {member_id: _ZERO for member_id in roster}

    for debt in debts:
        if debt.to_user_id in totals:
            totals[debt.to_user_id] += debt.amount
        if debt.from_user_id in totals:
            totals[debt.from_user_id] -= debt.amount

    return [MemberBalance(user_id=uid, net_balance=totals[uid]) for uid in roster]


def net_balance_for(debts: Iterable[Debt], user_id) -> Decimal:
    """Amount owed to user_id minus amount user_id owes, across `debts`."""
    balance = _ZERO
    for debt in debts:
        if debt.to_user_id == user_id:
            balance += debt.amount
        elif debt.from_user_id == user_id:
            balance -= debt.amount
    return balance


def debt_between(debts: Iterable[Debt], user_id, other_id) -> Decimal:
    """
    Signed amount between two members from user_id's perspective.

    Positive when other_id owes user_id, negative when user_id owes other_id,
    zero when the pair has no debt.
    """
    for debt in debts:
        if debt.from_user_id == other_id and debt.to_user_id == user_id:
            return debt.amount
        if debt.from_user_id == user_id and debt.to_user_id == other_id:
            return -debt.amount
    return _ZERO


def sort_debts(debts: Iterable[Debt]) -> list[Debt]:
    """Deterministic display order: by debtor, then creditor."""
    return sorted(debts, key=lambda d: (d.from_user_id, d.to_user_id))
