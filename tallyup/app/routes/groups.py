"""
routes/groups.py — Group and membership removal handlers.

Layer rules:
  - Call ONE service, commit, return envelope.
  - No business logic. No DB queries.

Endpoints (base url_prefix=/api/v1/groups):
  DELETE /groups/:id                  → 200  delete group (owner, settled only)
  DELETE /groups/:id/members/:uid     → 200  remove member (settled only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from tallyup.app.extensions import db
from tallyup.app.middleware.auth_middleware import require_auth
from tallyup.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Owner only. Refused while any debt is open."""
    group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — Owner removes anyone; member removes self."""
    group_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200
