"""
routes/balances.py — Group balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/debts                      → 200  net pairwise debts
  GET /groups/:id/member-balances            → 200  one net balance per member
  GET /groups/:id/stats                      → 200  total spend + caller's balance
  GET /groups/:id/members/:uid/outstanding   → 200  whether uid can leave
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from tallyup.app.extensions import db
from tallyup.app.middleware.auth_middleware import require_auth
from tallyup.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/debts", methods=["GET"])
@require_auth
def get_debts(group_id: int):
    """GET /groups/:id/debts — sorted by debtor, then creditor."""
    result = balance_service.get_debts_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/member-balances", methods=["GET"])
@require_auth
def get_member_balances(group_id: int):
    """GET /groups/:id/member-balances — every current member, zero included."""
    result = balance_service.get_member_balances_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/stats", methods=["GET"])
@require_auth
def get_group_stats(group_id: int):
    """GET /groups/:id/stats"""
    result = balance_service.get_group_stats_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/members/<int:user_id>/outstanding", methods=["GET"])
@require_auth
def get_outstanding(group_id: int, user_id: int):
    """GET /groups/:id/members/:uid/outstanding"""
    result = balance_service.get_outstanding_response(
        group_id=group_id,
        caller_id=g.user_id,
        user_id=user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
