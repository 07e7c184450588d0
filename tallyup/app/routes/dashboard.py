"""
routes/dashboard.py — Cross-group summary for the signed-in user.

Endpoints (base url_prefix=/api/v1/dashboard):
  GET /dashboard/stats   → 200  totals owed / owing across all groups
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from tallyup.app.extensions import db
from tallyup.app.middleware.auth_middleware import require_auth
from tallyup.app.services import balance_service

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/stats", methods=["GET"])
@require_auth
def get_dashboard_stats():
    """GET /dashboard/stats"""
    result = balance_service.get_dashboard_response(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
