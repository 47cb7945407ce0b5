"""
Finance requests blueprint.

Routes (requester):
  GET    /finance-requests                    – my requests (status, request_kind, limit)
  POST   /finance-requests                    – create
  GET    /finance-requests/<fid>              – detail + items + attachments + history
  DELETE /finance-requests/<fid>              – owner delete / admin purge
  POST   /finance-requests/<fid>/cancel       – owner cancel (Enviado only)

Routes (managers / finance analysts):
  GET    /admin/finance-requests              – filtered list, ?export=csv|xlsx downloads
  PATCH  /admin/finance-requests/<fid>/status – move along the review graph
"""

import logging

from flask import Blueprint, Response, jsonify, request

from portal.blueprints import json_body, register_error_handlers, require_actor
from portal.services import finance_service as fs

logger = logging.getLogger(__name__)

finance_bp = Blueprint("finance", __name__, url_prefix="/api/v1")
register_error_handlers(finance_bp)

_ADMIN_FILTERS = (
    "status", "request_kind", "company", "coordination",
    "date_start_from", "date_start_to", "q", "limit",
)


# ═════════════════════════════════════════════════════════════════════════════
# REQUESTER
# ═════════════════════════════════════════════════════════════════════════════

@finance_bp.route("/finance-requests", methods=["GET"])
def list_mine():
    actor_id = require_actor()
    filters = {k: request.args.get(k) for k in ("status", "request_kind", "limit")}
    rows = fs.list_my_finance_requests(actor_id, filters)
    return jsonify({"items": rows, "total": len(rows)})


@finance_bp.route("/finance-requests", methods=["POST"])
def create():
    """Body: the finance request payload (camelCase keys, optional items[])."""
    actor_id = require_actor()
    created = fs.create_finance_request(actor_id, json_body())
    return jsonify(created), 201


@finance_bp.route("/finance-requests/<fid>", methods=["GET"])
def detail(fid):
    actor_id = require_actor()
    return jsonify(fs.get_finance_request(actor_id, fid))


@finance_bp.route("/finance-requests/<fid>", methods=["DELETE"])
def delete(fid):
    actor_id = require_actor()
    deleted = fs.delete_finance_request(actor_id, fid)
    return jsonify({"success": True, "deleted": deleted})


@finance_bp.route("/finance-requests/<fid>/cancel", methods=["POST"])
def cancel(fid):
    actor_id = require_actor()
    return jsonify(fs.cancel_finance_request(actor_id, fid))


# ═════════════════════════════════════════════════════════════════════════════
# MANAGERS
# ═════════════════════════════════════════════════════════════════════════════

@finance_bp.route("/admin/finance-requests", methods=["GET"])
def admin_list():
    actor_id = require_actor()
    filters = {k: request.args.get(k) for k in _ADMIN_FILTERS}
    export = (request.args.get("export") or "").strip().lower()
    if export:
        payload, mimetype, filename = fs.export_finance_requests(actor_id, filters, export)
        return Response(
            payload,
            mimetype=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    rows = fs.list_finance_requests(actor_id, filters)
    return jsonify({"items": rows, "total": len(rows)})


@finance_bp.route("/admin/finance-requests/<fid>/status", methods=["PATCH"])
def admin_update_status(fid):
    """Body: { status, observation? }"""
    actor_id = require_actor()
    data = json_body()
    updated = fs.admin_update_finance_status(
        actor_id, fid, data.get("status"), data.get("observation"),
    )
    return jsonify(updated)
