"""
services/balance_service.py — Group debts, member balances and statistics.

All balance figures are derived on every call from the raw ledger: live
expenses (with their splits) and settlements. Nothing derived is persisted.
The arithmetic itself lives in services/netting.py; this module loads the
records, calls the engine, and shapes results for callers.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives ids and a SQLAlchemy Session as arguments.
  - compute_* functions return Decimal / netting dataclasses.
    get_*_response functions return JSON-ready dicts (amounts as strings).

Soft delete:
  get_active_expenses() ALWAYS filters WHERE deleted_at IS NULL. Balance
  code never queries the Expense model without it.

Fetch failures (SQLAlchemyError) propagate unchanged. There is no retry here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tallyup.app.errors import AppError, ErrorCode
from tallyup.app.models.expense import Expense
from tallyup.app.models.group import Group
from tallyup.app.models.membership import Membership
from tallyup.app.models.settlement import Settlement
from tallyup.app.models.user import User
from tallyup.app.services import netting
from tallyup.app.services.netting import Debt, MemberBalance, format_amount

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown"


# ── Data access helpers ────────────────────────────────────────────────────
# The only sanctioned way to read ledger data for balance purposes.

def get_active_expenses(group_id: int, session: Session) -> list[Expense]:
    """Returns a group's expenses WHERE deleted_at IS NULL, splits preloaded."""
    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),  # exclude soft-deleted
        )
    )
    return list(session.execute(stmt).scalars().all())


def get_settlements(group_id: int, session: Session) -> list[Settlement]:
    """Returns all settlements for a group. Settlements have no soft-delete."""
    stmt = select(Settlement).where(Settlement.group_id == group_id)
    return list(session.execute(stmt).scalars().all())


def get_member_ids(group_id: int, session: Session) -> list[int]:
    """Returns the user_ids of all current members, in join order."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_members(group_id: int, session: Session) -> list[User]:
    """Returns full User objects for all current group members."""
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_group_ids_for_user(user_id: int, session: Session) -> list[int]:
    """Returns the ids of every group the user currently belongs to."""
    stmt = (
        select(Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_user_names(user_ids, session: Session) -> dict[int, str]:
    """
    Maps user ids to display names.

    Reads the users table rather than the roster so members who have since
    left a group still resolve to a name.
    """
    ids = set(user_ids)
    if not ids:
        return {}
    stmt = select(User.id, User.name).where(User.id.in_(ids))
    return {uid: name for uid, name in session.execute(stmt).all()}


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _require_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a current member of group_id."""
    if user_id not in get_member_ids(group_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _serialize_debt(debt: Debt, names: dict) -> dict:
    payload = debt.to_dict()
    payload["from_name"] = names.get(debt.from_user_id, UNKNOWN_USER_NAME)
    payload["to_name"] = names.get(debt.to_user_id, UNKNOWN_USER_NAME)
    return payload


# ── Core operations ────────────────────────────────────────────────────────

def compute_group_debts(group_id: int, session: Session) -> list[Debt]:
    """
    Net pairwise debts for a group.

    One Debt per unordered pair with an outstanding amount of at least one
    cent. Order is unspecified. Debts may reference users who are no longer
    members; they are reported as-is.
    """
    expenses = get_active_expenses(group_id, session)
    settlements = get_settlements(group_id, session)
    debts = netting.compute_debts(expenses, settlements)

    logger.debug(
        "group %s: %d expenses, %d settlements -> %d debts",
        group_id, len(expenses), len(settlements), len(debts),
    )
    return debts


def compute_member_balances(group_id: int, session: Session) -> list[MemberBalance]:
    """
    One signed net balance per current member (positive = is owed).

    Members without debts are reported with zero. Debts that involve users
    outside the current roster are left out of the rows and logged.
    """
    debts = compute_group_debts(group_id, session)
    member_ids = get_member_ids(group_id, session)

    roster = set(member_ids)
    orphaned = {
        uid
        for debt in debts
        for uid in (debt.from_user_id, debt.to_user_id)
        if uid not in roster
    }
    if orphaned:
        logger.warning(
            "group %s has debts involving non-members %s; "
            "they are excluded from member balances",
            group_id, sorted(orphaned),
        )

    return netting.aggregate_member_balances(debts, member_ids)


def compute_group_stats(group_id: int, user_id: int, session: Session) -> dict:
    """
    Total live spend in the group plus user_id's net position.

    Returns {"total_expenses": Decimal, "user_balance": Decimal}. The total
    is the sum of expense amounts, independent of splits and settlements.
    """
    expenses = get_active_expenses(group_id, session)
    debts = netting.compute_debts(expenses, get_settlements(group_id, session))

    total = sum((netting.to_decimal(e.amount) for e in expenses), Decimal("0"))

    return {
        "total_expenses": total,
        "user_balance": netting.net_balance_for(debts, user_id),
    }


def has_outstanding_balance(group_id: int, user_id: int, session: Session) -> dict:
    """
    Whether user_id still has open debts in the group.

    Used to gate member removal. Returns:
      {"has_balance": bool, "balance": Decimal, "debts": list[Debt]}
    `debts` holds only the debts involving user_id. A member whose debts
    offset to a zero net still has a balance: each debt is owed to or by a
    specific person.
    """
    debts = compute_group_debts(group_id, session)
    involved = [d for d in debts if d.involves(user_id)]

    return {
        "has_balance": bool(involved),
        "balance": netting.net_balance_for(involved, user_id),
        "debts": netting.sort_debts(involved),
    }


def has_any_outstanding_balances(group_id: int, session: Session) -> bool:
    """True while any pair in the group has an open debt. Gates group deletion."""
    return bool(compute_group_debts(group_id, session))


def compute_dashboard_summary(user_id: int, session: Session) -> dict:
    """
    Totals across every group the user belongs to.

    Returns Decimal totals and per-counterparty sums:
      {"you_owe": Decimal, "youre_owed": Decimal, "active_groups": int,
       "you_owe_details": {user_id: Decimal},
       "youre_owed_details": {user_id: Decimal}}
    """
    group_ids = get_group_ids_for_user(user_id, session)

    you_owe: dict[int, Decimal] = defaultdict(Decimal)
    youre_owed: dict[int, Decimal] = defaultdict(Decimal)

    for group_id in group_ids:
        for debt in compute_group_debts(group_id, session):
            if debt.from_user_id == user_id:
                you_owe[debt.to_user_id] += debt.amount
            elif debt.to_user_id == user_id:
                youre_owed[debt.from_user_id] += debt.amount

    return {
        "you_owe": sum(you_owe.values(), Decimal("0")),
        "youre_owed": sum(youre_owed.values(), Decimal("0")),
        "active_groups": len(group_ids),
        "you_owe_details": dict(you_owe),
        "youre_owed_details": dict(youre_owed),
    }


# ── Response builders ──────────────────────────────────────────────────────
# These check that the caller may see the group, then format amounts as
# two-decimal strings and attach display names.

def get_debts_response(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Payload for GET /groups/:id/debts.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)  -- group does not exist.
        AppError(FORBIDDEN, 403)        -- caller not a group member.
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    debts = netting.sort_debts(compute_group_debts(group_id, session))
    names = get_user_names(
        [uid for d in debts for uid in (d.from_user_id, d.to_user_id)],
        session,
    )

    return {
        "group_id": group_id,
        "debts": [_serialize_debt(d, names) for d in debts],
    }


def get_member_balances_response(group_id: int, caller_id: int, session: Session) -> dict:
    """Payload for GET /groups/:id/member-balances."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    balances = compute_member_balances(group_id, session)
    names = {m.id: m.name for m in get_members(group_id, session)}
    balance_sum = sum((b.net_balance for b in balances), Decimal("0"))

    return {
        "group_id": group_id,
        "balances": [
            {
                **b.to_dict(),
                "name": names.get(b.user_id, UNKNOWN_USER_NAME),
            }
            for b in balances
        ],
        "balance_sum": format_amount(balance_sum),
    }


def get_group_stats_response(group_id: int, caller_id: int, session: Session) -> dict:
    """Payload for GET /groups/:id/stats."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    stats = compute_group_stats(group_id, caller_id, session)
    return {
        "group_id": group_id,
        "total_expenses": format_amount(stats["total_expenses"]),
        "user_balance": format_amount(stats["user_balance"]),
    }


def get_outstanding_response(
        group_id: int,
        caller_id: int,
        user_id: int,
        session: Session,
) -> dict:
    """Payload for GET /groups/:id/members/:uid/outstanding."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    info = has_outstanding_balance(group_id, user_id, session)
    names = get_user_names(
        [uid for d in info["debts"] for uid in (d.from_user_id, d.to_user_id)],
        session,
    )
    return {
        "group_id": group_id,
        "user_id": user_id,
        "has_balance": info["has_balance"],
        "balance": format_amount(info["balance"]),
        "debts": [_serialize_debt(d, names) for d in info["debts"]],
    }


def get_dashboard_response(user_id: int, session: Session) -> dict:
    """Payload for GET /dashboard/stats."""
    summary = compute_dashboard_summary(user_id, session)
    names = get_user_names(
        list(summary["you_owe_details"]) + list(summary["youre_owed_details"]),
        session,
    )

    def _details(per_user: dict) -> list[dict]:
        return [
            {
                "user_id": uid,
                "name": names.get(uid, UNKNOWN_USER_NAME),
                "amount": format_amount(amount),
            }
            for uid, amount in sorted(per_user.items())
        ]

    return {
        "you_owe": format_amount(summary["you_owe"]),
        "youre_owed": format_amount(summary["youre_owed"]),
        "active_groups": summary["active_groups"],
        "you_owe_details": _details(summary["you_owe_details"]),
        "youre_owed_details": _details(summary["youre_owed_details"]),
    }
