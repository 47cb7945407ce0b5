"""
Org / scope helper endpoints.

  GET  /org/derive?code=         – normalized code + (division, coordination, team)
  GET  /org/in-scope?code=       – whether the caller may act on a code
  GET  /me/scope                 – the caller's computed scope
  POST /finance/parse-amount     – BRL amount text → cents (public)
"""

from flask import Blueprint, jsonify, request

from portal.blueprints import json_body, register_error_handlers, require_actor
from portal.core.exceptions import ValidationError
from portal.services.org_hierarchy import derive_org, normalize_code
from portal.services.scope import compute_scope, in_scope
from portal.utils.currency import format_cents, parse_amount

org_bp = Blueprint("org", __name__, url_prefix="/api/v1")
register_error_handlers(org_bp)


def _code_arg() -> str:
    code = normalize_code(request.args.get("code"))
    if not code:
        raise ValidationError("code is required", details={"code": "required"})
    return code


@org_bp.route("/org/derive", methods=["GET"])
def derive():
    require_actor()
    code = _code_arg()
    chain = derive_org(code)
    return jsonify({
        "code": code,
        "org": chain._asdict() if chain else None,
    })


@org_bp.route("/org/in-scope", methods=["GET"])
def check_in_scope():
    actor_id = require_actor()
    code = _code_arg()
    scope = compute_scope(actor_id)
    return jsonify({"code": code, "in_scope": in_scope(code, scope), "effective_role": scope.effective_role})


@org_bp.route("/me/scope", methods=["GET"])
def my_scope():
    return jsonify(compute_scope(require_actor()).to_dict())


@org_bp.route("/finance/parse-amount", methods=["POST"])
def parse_amount_endpoint():
    """Body: { amount } → { cents, formatted } (both null when unparseable)."""
    raw = json_body().get("amount")
    cents = parse_amount(raw)
    return jsonify({"input": raw, "cents": cents, "formatted": format_cents(cents)})
