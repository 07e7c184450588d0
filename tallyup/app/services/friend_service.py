"""
services/friend_service.py — Balances and history between two users.

A "friend" is anyone who shares at least one group with the caller. The
balance between two friends is the sum, over their shared groups, of the
pairwise debt the netting engine reports for that group. Groups in which
the pair is settled are left out of the breakdown.

Shared history is a separate membership test: an expense is shared when
both users appear in it, as payer or as split participant, regardless of
whether their amounts net out.

Layer rules:
  - No Flask imports. Receives ids and a SQLAlchemy Session.
  - No shared groups is a normal zero result, never an error.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tallyup.app.models.expense import Expense
from tallyup.app.models.group import Group
from tallyup.app.models.membership import Membership
from tallyup.app.models.user import User
from tallyup.app.services import balance_service, netting
from tallyup.app.services.netting import format_amount

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


# ── Shared-group discovery ─────────────────────────────────────────────────

def get_shared_group_ids(user_id: int, friend_id: int, session: Session) -> list[int]:
    """
    Ids of the groups where both users are current members.

    Ordered the way the friend's memberships are ordered.
    """
    mine = set(balance_service.get_group_ids_for_user(user_id, session))
    theirs = balance_service.get_group_ids_for_user(friend_id, session)
    return [gid for gid in theirs if gid in mine]


def _get_group_names(group_ids, session: Session) -> dict[int, str]:
    ids = set(group_ids)
    if not ids:
        return {}
    stmt = select(Group.id, Group.name).where(Group.id.in_(ids))
    return {gid: name for gid, name in session.execute(stmt).all()}


# ── Balances ───────────────────────────────────────────────────────────────

def compute_friend_balance(user_id: int, friend_id: int, session: Session) -> dict:
    """
    Net balance between user_id and friend_id across all shared groups.

    Amounts are from user_id's perspective: positive means the friend owes
    the user, negative means the user owes the friend.

    Returns:
        {"friend_id": int,
         "net_balance": Decimal,
         "breakdown": [{"group_id", "group_name", "amount": Decimal}, ...]}
    """
    shared = get_shared_group_ids(user_id, friend_id, session)
    group_names = _get_group_names(shared, session)

    breakdown: list[dict] = []
    net_balance = Decimal("0")

    for group_id in shared:
        debts = balance_service.compute_group_debts(group_id, session)
        amount = netting.debt_between(debts, user_id, friend_id)
        if amount == 0:
            continue

        net_balance += amount
        breakdown.append({
            "group_id": group_id,
            "group_name": group_names.get(group_id, "Unknown"),
            "amount": amount,
        })

    return {
        "friend_id": friend_id,
        "net_balance": net_balance,
        "breakdown": breakdown,
    }


def list_friends(user_id: int, session: Session) -> list[dict]:
    """
    Everyone who shares a group with user_id, with their cross-group balance.

    Each row: {"id", "name", "email", "shared_group_count", "net_balance"}.
    Sorted by name, case-insensitively. Netting runs once per group the
    user belongs to, not once per friend.
    """
    group_ids = balance_service.get_group_ids_for_user(user_id, session)
    if not group_ids:
        return []

    stmt = (
        select(Membership.group_id, User)
        .join(User, User.id == Membership.user_id)
        .where(
            Membership.group_id.in_(group_ids),
            Membership.user_id != user_id,
        )
    )

    friends: dict[int, User] = {}
    shared_groups: dict[int, set[int]] = defaultdict(set)
    for group_id, friend in session.execute(stmt).all():
        friends[friend.id] = friend
        shared_groups[friend.id].add(group_id)

    net: dict[int, Decimal] = defaultdict(Decimal)
    for group_id in group_ids:
        for debt in balance_service.compute_group_debts(group_id, session):
            if debt.to_user_id == user_id and debt.from_user_id in friends:
                if group_id in shared_groups[debt.from_user_id]:
                    net[debt.from_user_id] += debt.amount
            elif debt.from_user_id == user_id and debt.to_user_id in friends:
                if group_id in shared_groups[debt.to_user_id]:
                    net[debt.to_user_id] -= debt.amount

    rows = [
        {
            "id": friend.id,
            "name": friend.name,
            "email": friend.email,
            "shared_group_count": len(shared_groups[fid]),
            "net_balance": net.get(fid, Decimal("0")),
        }
        for fid, friend in friends.items()
    ]
    return sorted(rows, key=lambda r: (r["name"].casefold(), r["id"]))


# ── Shared history ─────────────────────────────────────────────────────────

def involves_both(expense, user_id: int, friend_id: int) -> bool:
    """True when both users appear in the expense as payer or split participant."""
    participants = {split.user_id for split in expense.splits}
    participants.add(expense.paid_by_user_id)
    return user_id in participants and friend_id in participants


def _split_amount(expense, user_id: int):
    for split in expense.splits:
        if split.user_id == user_id:
            return split.amount
    return None


def _serialize_shared_expense(
        expense: Expense,
        user_id: int,
        friend_id: int,
        group_names: dict,
        user_names: dict,
) -> dict:
    user_split = _split_amount(expense, user_id)
    friend_split = _split_amount(expense, friend_id)
    return {
        "id": expense.id,
        "description": expense.description,
        "amount": format_amount(expense.amount),
        "date": expense.date.isoformat(),
        "group_id": expense.group_id,
        "group_name": group_names.get(expense.group_id, "Unknown"),
        "paid_by_user_id": expense.paid_by_user_id,
        "paid_by_name": user_names.get(expense.paid_by_user_id, "Unknown"),
        "category": getattr(expense.category, "value", expense.category),
        "user_split": format_amount(user_split) if user_split is not None else None,
        "friend_split": format_amount(friend_split) if friend_split is not None else None,
    }


def get_shared_transactions(
        user_id: int,
        friend_id: int,
        session: Session,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
) -> list[dict]:
    """
    Live expenses from shared groups that involve both users.

    Filtered first, then sorted by date (newest first, ties by id descending),
    then windowed to [offset, offset + limit). A user has no history
    shared with themselves.
    """
    if user_id == friend_id:
        return []

    shared = get_shared_group_ids(user_id, friend_id, session)
    if not shared:
        return []

    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id.in_(shared),
            Expense.deleted_at.is_(None),
        )
    )
    expenses = session.execute(stmt).scalars().all()

    matching = [e for e in expenses if involves_both(e, user_id, friend_id)]
    matching.sort(key=lambda e: (e.date, e.id), reverse=True)
    page = matching[offset:offset + limit]

    logger.debug(
        "shared history %s<->%s: %d of %d expenses match, returning %d",
        user_id, friend_id, len(matching), len(expenses), len(page),
    )

    group_names = _get_group_names(shared, session)
    user_names = balance_service.get_user_names(
        [e.paid_by_user_id for e in page],
        session,
    )
    return [
        _serialize_shared_expense(e, user_id, friend_id, group_names, user_names)
        for e in page
    ]


# ── Response builders ──────────────────────────────────────────────────────

def get_friend_balance_response(user_id: int, friend_id: int, session: Session) -> dict:
    """Payload for GET /friends/:id/balance."""
    result = compute_friend_balance(user_id, friend_id, session)
    return {
        "friend_id": result["friend_id"],
        "net_balance": format_amount(result["net_balance"]),
        "breakdown": [
            {**row, "amount": format_amount(row["amount"])}
            for row in result["breakdown"]
        ],
    }


def get_friends_response(user_id: int, session: Session) -> list[dict]:
    """Payload for GET /friends."""
    return [
        {**row, "net_balance": format_amount(row["net_balance"])}
        for row in list_friends(user_id, session)
    ]
