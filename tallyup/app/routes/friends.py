"""
routes/friends.py — Friend route handlers.

A friend is any user who shares at least one group with the caller. Asking
about a user with no shared groups is not an error: the balance is zero and
the history is empty.

Endpoints (base url_prefix=/api/v1/friends):
  GET /friends                          → 200  friends with net balances
  GET /friends/:id/balance              → 200  net balance + per-group breakdown
  GET /friends/:id/expenses?limit&offset→ 200  shared expense history
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from tallyup.app.extensions import db
from tallyup.app.middleware.auth_middleware import require_auth
from tallyup.app.schemas.friend_schema import SharedTransactionsQuerySchema
from tallyup.app.services import friend_service

friends_bp = Blueprint("friends", __name__)


@friends_bp.route("/", methods=["GET"])
@require_auth
def list_friends():
    """GET /friends — sorted by name."""
    result = friend_service.get_friends_response(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@friends_bp.route("/<int:friend_id>/balance", methods=["GET"])
@require_auth
def get_friend_balance(friend_id: int):
    """GET /friends/:id/balance — positive amounts mean the friend owes the caller."""
    result = friend_service.get_friend_balance_response(
        user_id=g.user_id,
        friend_id=friend_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@friends_bp.route("/<int:friend_id>/expenses", methods=["GET"])
@require_auth
def get_shared_expenses(friend_id: int):
    """GET /friends/:id/expenses — newest first."""
    schema = SharedTransactionsQuerySchema(
        max_limit=current_app.config["SHARED_TRANSACTIONS_MAX_LIMIT"],
    )
    params = schema.load(request.args)
    result = friend_service.get_shared_transactions(
        user_id=g.user_id,
        friend_id=friend_id,
        session=db.session,
        limit=params["limit"],
        offset=params["offset"],
    )
    return jsonify({"data": {"expenses": result}, "warnings": []}), 200
