"""
services/group_service.py — Membership removal and group deletion.

Both operations are gated on the balance engine: nobody leaves, and no
group is deleted, while money is still owed inside it.

Authorization rules:
  - Removing a member: the group owner may remove any other member; any
    member may remove themselves. The owner cannot be removed.
  - Deleting a group:  group owner only.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from tallyup.app.errors import AppError, ErrorCode
from tallyup.app.models.expense import Expense
from tallyup.app.models.group import Group
from tallyup.app.models.membership import Membership
from tallyup.app.models.settlement import Settlement
from tallyup.app.models.split import Split
from tallyup.app.services import balance_service
from tallyup.app.services.netting import format_amount


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


def _get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def _require_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if _get_membership(group_id, user_id, session) is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _describe_balance(balance) -> str:
    if balance > 0:
        return f"is owed {format_amount(balance)}"
    if balance < 0:
        return f"owes {format_amount(-balance)}"
    return "has unsettled debts"


# ── Public service functions ───────────────────────────────────────────────

def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a user from a group once they are settled up.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)      — group does not exist
      AppError(FORBIDDEN, 403)            — caller not authorised
      AppError(MEMBER_NOT_FOUND, 404)     — target is not a member
      AppError(OWNER_CANNOT_LEAVE, 422)   — target is the group owner
      AppError(OUTSTANDING_BALANCE, 409)  — target still owes or is owed
    """
    group = _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    is_owner = (caller_id == group.owner_user_id)
    is_self = (caller_id == target_user_id)

    if not (is_owner or is_self):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are the owner.",
            403,
        )

    membership = _get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    if target_user_id == group.owner_user_id:
        raise AppError(
            ErrorCode.OWNER_CANNOT_LEAVE,
            "The group owner cannot be removed from the group.",
            422,
        )

    info = balance_service.has_outstanding_balance(group_id, target_user_id, session)
    if info["has_balance"]:
        raise AppError(
            ErrorCode.OUTSTANDING_BALANCE,
            f"Cannot remove a member who {_describe_balance(info['balance'])}. "
            f"Settle up first.",
            409,
            details={
                "balance": format_amount(info["balance"]),
                "debts": [d.to_dict() for d in info["debts"]],
            },
        )

    session.delete(membership)
    session.flush()


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """
    Deletes a group and its ledger once every member is settled up.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)      — group does not exist
      AppError(FORBIDDEN, 403)            — caller is not the owner
      AppError(OUTSTANDING_BALANCE, 409)  — some pair still has a debt
    """
    group = _get_group_or_404(group_id, session)

    if caller_id != group.owner_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the group owner may delete the group.",
            403,
        )

    if balance_service.has_any_outstanding_balances(group_id, session):
        raise AppError(
            ErrorCode.OUTSTANDING_BALANCE,
            "Cannot delete a group with outstanding balances. "
            "All members must settle up first.",
            409,
        )

    # Child rows first: every FK into groups is ON DELETE RESTRICT.
    expense_ids = select(Expense.id).where(Expense.group_id == group_id)
    session.execute(delete(Split).where(Split.expense_id.in_(expense_ids)))
    session.execute(delete(Expense).where(Expense.group_id == group_id))
    session.execute(delete(Settlement).where(Settlement.group_id == group_id))
    session.execute(delete(Membership).where(Membership.group_id == group_id))
    session.delete(group)
    session.flush()
