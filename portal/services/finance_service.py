"""
Finance Request Workflow — reimbursements (Reembolso) and advances (Adiantamento).

Lifecycle (FINANCE_STATUS_TRANSITIONS in ``portal.models.finance``):

    Enviado ──► Em análise ◄──► Aprovado ◄──► Reprovado ◄──► Pago
       │         (review statuses move freely among themselves)
       └──► Cancelado   (owner only, terminal)

Every status change is a compare-and-swap on the status that was read and
appends exactly one history row whose ``from_status`` is that status. The
initial ``None → Enviado`` history row and audit rows are best-effort.

Usage:
    from portal.services.finance_service import create_finance_request

    created = create_finance_request(actor_id, payload)
"""

import logging
import re
import secrets
import string
from datetime import date, datetime, timezone

from portal.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from portal.models import db
from portal.models.finance import (
    CANCEL_OBSERVATION,
    EXPENSE_TYPE_ADIANTAMENTO,
    EXPENSE_TYPE_MULTIPLE,
    FINANCE_COMPANIES,
    FINANCE_COORDINATIONS,
    FINANCE_CURRENCY,
    FINANCE_EXPENSE_TYPES,
    FINANCE_REQUEST_KINDS,
    FINANCE_STATUSES,
    KIND_ADIANTAMENTO,
    KIND_REEMBOLSO,
    MAX_ATTACHMENTS_PER_REQUEST,
    MAX_ITEMS_PER_REQUEST,
    STATUS_CANCELADO,
    STATUS_ENVIADO,
    normalize_finance_status,
    validate_finance_transition,
)
from portal.services import side_effects
from portal.services.finance_export import render_csv, render_xlsx
from portal.services.scope import (
    can_manage_finance_requests,
    can_purge_finance_requests,
    is_guest_profile,
)
from portal.stores.audit import AuditSink
from portal.stores.requests import RequestStore
from portal.stores.roles import RoleStore
from portal.utils.currency import parse_amount

logger = logging.getLogger(__name__)

DESCRIPTION_MIN = 10
DESCRIPTION_MAX = 5000
OBSERVATION_MAX = 2000
ADMIN_LIST_DEFAULT, ADMIN_LIST_MAX = 120, 500
OWN_LIST_DEFAULT, OWN_LIST_MAX = 60, 200

EXPORT_FORMATS = ("csv", "xlsx")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_PROTOCOL_ALPHABET = string.ascii_uppercase + string.digits
_TRUE_WORDS = {"sim", "true", "1", "yes"}
_FALSE_WORDS = {"não", "nao", "false", "0", "no", ""}


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _safe_text(value, max_len: int = 2000) -> str | None:
    s = str(value if value is not None else "").strip()
    if not s:
        return None
    return s[:max_len]


def _parse_iso_date(raw) -> date | None:
    """``date`` for a strict ``YYYY-MM-DD`` string, else None."""
    s = str(raw or "").strip()
    if not _ISO_DATE_RE.match(s):
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _clamp_limit(raw, default: int, maximum: int) -> int:
    try:
        n = int(raw)
    except (TypeError, ValueError):
        return default
    if n <= 0:
        return default
    return max(1, min(maximum, n))


def _parse_bool(raw):
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    word = str(raw).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def generate_protocol(requests: RequestStore, today: date | None = None) -> str:
    """Unique ``FIN-YYYYMMDD-XXXXXX`` code."""
    stamp = (today or datetime.now(timezone.utc).date()).strftime("%Y%m%d")
    for _ in range(8):
        suffix = "".join(secrets.choice(_PROTOCOL_ALPHABET) for _ in range(6))
        protocol = f"FIN-{stamp}-{suffix}"
        if not requests.protocol_exists(protocol):
            return protocol
    raise DependencyError("Could not allocate a unique protocol")


def _actor_context(actor_id, requests: RequestStore, roles: RoleStore):
    """Return ``(profile, role_set)``; guests are refused the whole module."""
    profile = requests.get_profile(actor_id)
    if profile is None:
        raise AuthenticationError("Unknown actor")
    role_set = roles.get_roles(actor_id)
    if is_guest_profile(profile, role_set):
        raise AuthorizationError("Guests cannot use finance requests")
    return profile, role_set


def _load_request(requests: RequestStore, request_id):
    req = requests.get_finance_request(request_id)
    if req is None:
        raise NotFoundError("FinanceRequest", request_id)
    return req


def can_owner_delete(req, history, owner_id) -> bool:
    """Owner may delete only an untouched request.

    Still ``Enviado``, never opened by an analyst, and no history beyond the
    owner's own initial ``None → Enviado`` row.
    """
    if req is None or str(req.created_by) != str(owner_id):
        return False
    if req.status != STATUS_ENVIADO or req.analyst_viewed_at is not None:
        return False
    rows = list(history or [])
    if len(rows) > 1:
        return False
    for row in rows:
        if row.from_status is not None or row.to_status != STATUS_ENVIADO:
            return False
        if row.changed_by and str(row.changed_by) != str(owner_id):
            return False
    return True


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════

def _validate_attachments(raw, key: str, errors: dict) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors[key] = "must be a list"
        return []
    out = []
    for i, att in enumerate(raw):
        url = str((att or {}).get("url") or "").strip() if isinstance(att, dict) else ""
        if not url.startswith(("http://", "https://")):
            errors[f"{key}.{i}.url"] = "valid URL required"
            continue
        size = att.get("sizeBytes")
        if size is not None and (not isinstance(size, int) or isinstance(size, bool) or size < 0):
            errors[f"{key}.{i}.sizeBytes"] = "must be a non-negative integer"
            continue
        metadata = att.get("metadata")
        out.append({
            "url": url,
            "filename": _safe_text(att.get("filename"), 240),
            "content_type": _safe_text(att.get("contentType"), 120),
            "size_bytes": size,
            "storage_bucket": _safe_text(att.get("storageBucket"), 80),
            "storage_path": _safe_text(att.get("storagePath"), 600),
            "metadata_json": dict(metadata) if isinstance(metadata, dict) else {},
        })
    return out


def _validate_line(
    raw: dict,
    kind: str,
    prefix: str,
    errors: dict,
    *,
    attachments_key: str,
) -> tuple[str, int | None, list[dict]]:
    """Validate one expense line (the legacy single form or one item).

    Returns ``(expense_type, amount_cents, attachments)``.
    """
    expense = str(raw.get("expenseType") or "").strip()
    amount_raw = raw.get("amountBrl")
    amount_text = str(amount_raw if amount_raw is not None else "").strip()

    if kind == KIND_ADIANTAMENTO:
        if expense and expense != EXPENSE_TYPE_ADIANTAMENTO:
            errors[f"{prefix}expenseType"] = "must be Adiantamento for an advance"
        if amount_text:
            errors[f"{prefix}amountBrl"] = "amount is not allowed for an advance"
        if raw.get("attachments"):
            errors[attachments_key] = "attachments are not allowed for an advance"
        return EXPENSE_TYPE_ADIANTAMENTO, None, []

    if not expense:
        errors[f"{prefix}expenseType"] = "required"
    elif expense == EXPENSE_TYPE_ADIANTAMENTO:
        errors[f"{prefix}expenseType"] = "Adiantamento is not allowed for a reimbursement"
    elif expense not in FINANCE_EXPENSE_TYPES:
        errors[f"{prefix}expenseType"] = "unknown expense type"

    amount = None
    if not amount_text:
        errors[f"{prefix}amountBrl"] = "required"
    else:
        amount = parse_amount(amount_text)
        if amount is None or amount <= 0:
            errors[f"{prefix}amountBrl"] = "invalid amount (e.g. 123,45 or 1.234,56)"
            amount = None

    attachments = _validate_attachments(raw.get("attachments"), attachments_key, errors)
    if not attachments and attachments_key not in errors:
        errors[attachments_key] = "at least one attachment is required"
    return expense, amount, attachments


def validate_finance_payload(payload) -> dict:
    """Validate a create payload and return the normalized request.

    Every problem is collected; a single ValidationError carries them all in
    ``details`` keyed by payload field (``items.{i}.field`` for items).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload", details={"_": "JSON object expected"})

    errors: dict[str, str] = {}

    company = str(payload.get("company") or "").strip()
    if company not in FINANCE_COMPANIES:
        errors["company"] = "unknown company"

    coordination = str(payload.get("coordination") or "").strip()
    if coordination not in FINANCE_COORDINATIONS:
        errors["coordination"] = "unknown coordination"

    kind = str(payload.get("requestKind") or "").strip()
    if kind not in FINANCE_REQUEST_KINDS:
        errors["requestKind"] = "must be Reembolso or Adiantamento"

    training = _parse_bool(payload.get("trainingOperational"))
    if training is None:
        errors["trainingOperational"] = "must be Sim or Não"

    date_start = _parse_iso_date(payload.get("dateStart"))
    if date_start is None:
        errors["dateStart"] = "invalid date (use YYYY-MM-DD)"
    date_end = None
    if payload.get("dateEnd"):
        date_end = _parse_iso_date(payload.get("dateEnd"))
        if date_end is None:
            errors["dateEnd"] = "invalid date (use YYYY-MM-DD)"
        elif date_start is not None and date_end < date_start:
            errors["dateEnd"] = "must be on or after dateStart"

    description = str(payload.get("description") or "").strip()
    if not DESCRIPTION_MIN <= len(description) <= DESCRIPTION_MAX:
        errors["description"] = f"must be {DESCRIPTION_MIN}-{DESCRIPTION_MAX} characters"

    items_raw = payload.get("items")
    using_items = isinstance(items_raw, list) and len(items_raw) > 0
    lines = []

    if kind in FINANCE_REQUEST_KINDS:
        if using_items:
            if len(items_raw) > MAX_ITEMS_PER_REQUEST:
                errors["items"] = f"at most {MAX_ITEMS_PER_REQUEST} items"
            for i, item in enumerate(items_raw[:MAX_ITEMS_PER_REQUEST]):
                if not isinstance(item, dict):
                    errors[f"items.{i}"] = "must be an object"
                    continue
                expense, amount, atts = _validate_line(
                    item, kind, f"items.{i}.", errors, attachments_key=f"items.{i}.attachments",
                )
                lines.append({
                    "idx": i,
                    "expense_type": expense,
                    "description": _safe_text(item.get("description")) or _safe_text(description) or "—",
                    "amount_cents": amount,
                    "source": "multi_item_v1",
                    "attachments": atts,
                })
        else:
            expense, amount, atts = _validate_line(payload, kind, "", errors, attachments_key="attachments")
            lines.append({
                "idx": 0,
                "expense_type": expense,
                "description": _safe_text(description) or "—",
                "amount_cents": amount,
                "source": "legacy_v1",
                "attachments": atts,
            })

    total_attachments = sum(len(line["attachments"]) for line in lines)
    if total_attachments > MAX_ATTACHMENTS_PER_REQUEST:
        errors["attachments"] = f"at most {MAX_ATTACHMENTS_PER_REQUEST} attachments"

    if errors:
        raise ValidationError("Invalid finance request", details=errors)

    if kind == KIND_ADIANTAMENTO:
        expense_type = EXPENSE_TYPE_ADIANTAMENTO
        amount_cents = None
    else:
        distinct = {line["expense_type"] for line in lines}
        expense_type = distinct.pop() if len(distinct) == 1 else EXPENSE_TYPE_MULTIPLE
        amount_cents = sum(line["amount_cents"] for line in lines)

    return {
        "company": company,
        "training_operational": training,
        "request_kind": kind,
        "expense_type": expense_type,
        "coordination": coordination,
        "date_start": date_start,
        "date_end": date_end,
        "description": description,
        "amount_cents": amount_cents,
        "lines": lines,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Create / cancel / status
# ═════════════════════════════════════════════════════════════════════════════

def create_finance_request(
    actor_id: str,
    payload: dict,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    audit: AuditSink | None = None,
) -> dict:
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    audit = audit or AuditSink()

    profile, _ = _actor_context(actor_id, requests, roles)
    data = validate_finance_payload(payload)

    req = requests.insert_finance_request(
        protocol=generate_protocol(requests),
        created_by=actor_id,
        created_by_name=_safe_text(profile.name, 200) or _safe_text(profile.email, 200),
        created_by_email=_safe_text(profile.email, 200),
        created_by_matricula=_safe_text(profile.matricula, 80),
        company=data["company"],
        training_operational=data["training_operational"],
        request_kind=data["request_kind"],
        expense_type=data["expense_type"],
        coordination=data["coordination"],
        date_start=data["date_start"],
        date_end=data["date_end"],
        description=data["description"],
        amount_cents=data["amount_cents"],
        currency=FINANCE_CURRENCY,
        status=STATUS_ENVIADO,
    )

    try:
        item_ids = requests.insert_finance_items(req.id, [
            {k: line[k] for k in ("idx", "expense_type", "description", "amount_cents", "source")}
            for line in data["lines"]
        ])
        attachments = []
        for line in data["lines"]:
            for att in line["attachments"]:
                attachments.append({
                    **att,
                    "item_id": item_ids.get(line["idx"]),
                    "uploaded_by": actor_id,
                    "metadata_json": {**att["metadata_json"], "finance_item_idx": line["idx"]},
                })
        requests.insert_finance_attachments(req.id, attachments)
    except Exception as exc:
        # Nothing was committed: rolling back removes the request row too.
        db.session.rollback()
        logger.exception("Finance request children insert failed", extra={"actor_id": actor_id})
        raise DependencyError("Could not store the request items/attachments") from exc

    side_effects.dispatch(
        "finance.initial_history",
        requests.append_history,
        req.id,
        changed_by=actor_id,
        from_status=None,
        to_status=STATUS_ENVIADO,
    )
    side_effects.dispatch(
        "audit.finance_request.create",
        audit.append,
        actor_id, "finance_request.create", "finance_request", req.id,
        after={"protocol": req.protocol, "request_kind": req.request_kind, "amount_cents": req.amount_cents},
    )
    db.session.commit()
    logger.info(
        "Finance request created",
        extra={"request_id": req.id, "protocol": req.protocol, "actor_id": actor_id},
    )
    return {
        **req.to_dict(),
        "items": [i.to_dict() for i in req.items],
        "attachments": [a.to_dict() for a in req.attachments],
    }


def cancel_finance_request(
    actor_id: str,
    request_id: str,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    audit: AuditSink | None = None,
) -> dict:
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    audit = audit or AuditSink()

    _actor_context(actor_id, requests, roles)
    req = _load_request(requests, request_id)
    if str(req.created_by) != str(actor_id):
        raise AuthorizationError("Only the requester can cancel this request")
    if req.status != STATUS_ENVIADO:
        raise InvalidTransitionError("FinanceRequest", req.status, STATUS_CANCELADO)

    if not requests.swap_finance_status(
        req.id, STATUS_ENVIADO, STATUS_CANCELADO, last_observation=CANCEL_OBSERVATION,
    ):
        db.session.rollback()
        current = _load_request(requests, request_id)
        raise InvalidTransitionError("FinanceRequest", current.status, STATUS_CANCELADO)

    requests.append_history(
        req.id,
        changed_by=actor_id,
        from_status=STATUS_ENVIADO,
        to_status=STATUS_CANCELADO,
        observation=CANCEL_OBSERVATION,
    )
    side_effects.dispatch(
        "audit.finance_request.cancel",
        audit.append,
        actor_id, "finance_request.cancel", "finance_request", req.id,
        before={"status": STATUS_ENVIADO}, after={"status": STATUS_CANCELADO},
    )
    db.session.commit()
    logger.info("Finance request cancelled", extra={"request_id": req.id, "actor_id": actor_id})
    return req.to_dict()


def admin_update_finance_status(
    actor_id: str,
    request_id: str,
    new_status: str,
    observation: str | None = None,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    audit: AuditSink | None = None,
) -> dict:
    """Move a request along the review graph on behalf of a manager/analyst.

    Raises:
        AuthorizationError: actor cannot manage finance requests.
        ValidationError: unknown status or observation too long.
        NotFoundError: request does not exist.
        InvalidTransitionError: the graph forbids the move (incl. any move to Cancelado).
        ConflictError: another writer changed the status between read and write.
    """
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    audit = audit or AuditSink()

    profile, role_set = _actor_context(actor_id, requests, roles)
    if not can_manage_finance_requests(role_set, profile):
        raise AuthorizationError("Insufficient permissions to manage finance requests")

    status = normalize_finance_status(new_status)
    if status not in FINANCE_STATUSES:
        raise ValidationError(f"Unknown status: {new_status!r}", details={"status": "invalid"})
    obs = _safe_text(observation, OBSERVATION_MAX + 1)
    if obs and len(obs) > OBSERVATION_MAX:
        raise ValidationError("Observation too long", details={"observation": f"max {OBSERVATION_MAX} characters"})

    req = _load_request(requests, request_id)
    from_status = req.status
    if status == STATUS_CANCELADO or not validate_finance_transition(from_status, status):
        raise InvalidTransitionError("FinanceRequest", from_status, status)

    if not requests.swap_finance_status(req.id, from_status, status, last_observation=obs):
        db.session.rollback()
        raise ConflictError(
            "FinanceRequest", "status", from_status,
            message=f"FinanceRequest status changed from {from_status!r} by another user",
        )

    requests.append_history(
        req.id, changed_by=actor_id, from_status=from_status, to_status=status, observation=obs,
    )
    side_effects.dispatch(
        "audit.finance_request.status_change",
        audit.append,
        actor_id, "finance_request.status_change", "finance_request", req.id,
        before={"status": from_status}, after={"status": status, "observation": obs},
    )
    db.session.commit()
    logger.info(
        "Finance request status changed",
        extra={"request_id": req.id, "from_status": from_status, "to_status": status, "actor_id": actor_id},
    )
    return req.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════════

def get_finance_request(
    actor_id: str,
    request_id: str,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
) -> dict:
    requests = requests or RequestStore()
    roles = roles or RoleStore()

    profile, role_set = _actor_context(actor_id, requests, roles)
    req = _load_request(requests, request_id)
    is_owner = str(req.created_by) == str(actor_id)
    can_manage = can_manage_finance_requests(role_set, profile)
    if not is_owner and not can_manage:
        raise AuthorizationError("Forbidden")

    if can_manage and not is_owner and req.analyst_viewed_at is None:
        if requests.mark_analyst_viewed(req.id):
            db.session.commit()

    history = requests.list_history(req.id)
    can_delete = can_purge_finance_requests(role_set) or (is_owner and can_owner_delete(req, history, actor_id))
    return {
        "request": req.to_dict(),
        "items": [i.to_dict() for i in req.items],
        "attachments": [a.to_dict() for a in req.attachments],
        "history": [h.to_dict() for h in history],
        "permissions": {
            "can_manage": can_manage,
            "can_cancel": is_owner and req.status == STATUS_ENVIADO,
            "can_delete": can_delete,
        },
    }


def _parse_filters(filters: dict | None) -> dict:
    filters = filters or {}
    errors = {}

    def _opt(key, max_len):
        value = _safe_text(filters.get(key), max_len)
        return None if value in (None, "all") else value

    status = _opt("status", 40)
    if status:
        status = normalize_finance_status(status)
        if status not in FINANCE_STATUSES:
            errors["status"] = "invalid"

    dates = {}
    for key in ("date_start_from", "date_start_to"):
        raw = _safe_text(filters.get(key), 30)
        dates[key] = _parse_iso_date(raw) if raw else None
        if raw and dates[key] is None:
            errors[key] = "invalid date (use YYYY-MM-DD)"
    if dates["date_start_from"] and dates["date_start_to"] and dates["date_start_to"] < dates["date_start_from"]:
        errors["date_start_to"] = "must be on or after date_start_from"

    if errors:
        raise ValidationError("Invalid filters", details=errors)

    return {
        "status": status,
        "request_kind": _opt("request_kind", 40),
        "company": _opt("company", 80),
        "coordination": _opt("coordination", 80),
        "q": _opt("q", 200),
        **dates,
    }


def _managed_rows(actor_id, filters, requests, roles):
    profile, role_set = _actor_context(actor_id, requests, roles)
    if not can_manage_finance_requests(role_set, profile):
        raise AuthorizationError("Insufficient permissions to manage finance requests")
    parsed = _parse_filters(filters)
    limit = _clamp_limit((filters or {}).get("limit"), ADMIN_LIST_DEFAULT, ADMIN_LIST_MAX)
    return requests.query_finance_requests(limit=limit, **parsed)


def list_finance_requests(
    actor_id: str,
    filters: dict | None = None,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
) -> list[dict]:
    """All requests matching ``filters`` (managers / analysts only)."""
    rows = _managed_rows(actor_id, filters, requests or RequestStore(), roles or RoleStore())
    return [r.to_dict() for r in rows]


def list_my_finance_requests(
    actor_id: str,
    filters: dict | None = None,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
) -> list[dict]:
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    _actor_context(actor_id, requests, roles)

    filters = filters or {}
    parsed = _parse_filters({k: filters.get(k) for k in ("status", "request_kind")})
    limit = _clamp_limit(filters.get("limit"), OWN_LIST_DEFAULT, OWN_LIST_MAX)
    rows = requests.query_finance_requests(
        created_by=actor_id, status=parsed["status"], request_kind=parsed["request_kind"], limit=limit,
    )
    return [r.to_dict() for r in rows]


def export_finance_requests(
    actor_id: str,
    filters: dict | None = None,
    fmt: str = "csv",
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
):
    """Render the filtered list as ``(payload, mimetype, filename)``.

    CSV amounts use a comma decimal separator; XLSX amounts are numeric.
    """
    fmt = (fmt or "").strip().lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt!r}", details={"export": "csv or xlsx"})
    rows = _managed_rows(actor_id, filters, requests or RequestStore(), roles or RoleStore())
    logger.info("Finance requests exported", extra={"actor_id": actor_id, "format": fmt, "rows": len(rows)})
    if fmt == "xlsx":
        return (
            render_xlsx(rows),
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "finance-requests.xlsx",
        )
    return render_csv(rows), "text/csv; charset=utf-8", "finance-requests.csv"


# ═════════════════════════════════════════════════════════════════════════════
# Delete
# ═════════════════════════════════════════════════════════════════════════════

def delete_finance_request(
    actor_id: str,
    request_id: str,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    audit: AuditSink | None = None,
) -> dict:
    """Owner deletion of an untouched request, or an admin purge of any request."""
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    audit = audit or AuditSink()

    _, role_set = _actor_context(actor_id, requests, roles)
    req = _load_request(requests, request_id)
    purge = can_purge_finance_requests(role_set)
    if not purge:
        if str(req.created_by) != str(actor_id):
            raise AuthorizationError("Only the requester or an admin can delete this request")
        if not can_owner_delete(req, requests.list_history(req.id), actor_id):
            raise InvalidTransitionError("FinanceRequest", req.status, "deleted")

    snapshot = {"id": req.id, "protocol": req.protocol, "status": req.status}
    requests.delete_finance_request(req.id)
    side_effects.dispatch(
        "audit.finance_request.delete",
        audit.append,
        actor_id, "finance_request.delete", "finance_request", snapshot["id"],
        before=snapshot, after={"purge": purge},
    )
    db.session.commit()
    logger.info("Finance request deleted", extra={**snapshot, "actor_id": actor_id, "purge": purge})
    return snapshot
