"""
Registration review blueprint.

Routes:
  GET    /registrations/pending              – registrations the caller may review
  POST   /registrations/<rid>/approve        – approve (provisions account + profile)
  POST   /registrations/<rid>/reject         – reject with mandatory notes

Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from portal.blueprints import json_body, register_error_handlers, require_actor
from portal.services import registration_service as rs

logger = logging.getLogger(__name__)

registration_bp = Blueprint("registrations", __name__, url_prefix="/api/v1")
register_error_handlers(registration_bp)


@registration_bp.route("/registrations/pending", methods=["GET"])
def list_pending():
    """Query params: status (default pending), limit (default 200, max 500)."""
    actor_id = require_actor()
    rows = rs.list_pending_registrations(
        actor_id,
        status=request.args.get("status") or "pending",
        limit=request.args.get("limit"),
    )
    return jsonify({"items": rows, "total": len(rows)})


@registration_bp.route("/registrations/<rid>/approve", methods=["POST"])
def approve(rid):
    """Body: { sigla_area?, operational_base?, grant_curator?, notes? }"""
    actor_id = require_actor()
    data = json_body()
    account_id = rs.approve_registration(
        rid,
        actor_id,
        sigla_area=data.get("sigla_area"),
        operational_base=data.get("operational_base"),
        grant_curator=bool(data.get("grant_curator")),
        notes=(data.get("notes") or "").strip() or None,
    )
    return jsonify({"success": True, "registration_id": rid, "account_id": account_id}), 200


@registration_bp.route("/registrations/<rid>/reject", methods=["POST"])
def reject(rid):
    """Body: { notes }"""
    actor_id = require_actor()
    data = json_body()
    reg = rs.reject_registration(rid, actor_id, data.get("notes"))
    return jsonify({"success": True, "registration": reg}), 200
