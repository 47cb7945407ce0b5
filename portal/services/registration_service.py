"""
Registration Approval Workflow.

Self-service sign-ups land in ``pending_registrations``. A staff member with
scope over the registration's area approves it (provisioning an identity
account, a profile, an org position and base roles) or rejects it.

State machine (REGISTRATION_TRANSITIONS):
    pending → approved | rejected    (both terminal)

Approval is split around a commit point:
    - before it, only reads and checks happen; any error leaves no trace;
    - the commit point is a conditional claim of the row
      (``status = 'pending'`` guard), so two concurrent approvals produce one
      winner and one NotFoundError;
    - after it, every provisioning step registers a compensation. A failure
      in any step, or in the final commit, rolls back the transaction
      (releasing the claim), runs the compensations and surfaces
      DependencyError.

Usage:
    from portal.services.registration_service import approve_registration

    account_id = approve_registration(reg_id, actor_id, grant_curator=True)
"""

import logging

from flask import current_app

from portal.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from portal.models import db
from portal.models.auth import ROLE_COLLAB, ROLE_CONTENT_CURATOR, ROLE_INVITED
from portal.models.org import EXTERNAL_AREA_CODES, GUEST_TEAM_ID
from portal.models.registration import (
    REGISTRATION_APPROVED,
    REGISTRATION_PENDING,
    REGISTRATION_REJECTED,
    REGISTRATION_STATUSES,
)
from portal.services import side_effects
from portal.services.org_hierarchy import assign_profile_team, normalize_code
from portal.services.saga import Saga
from portal.services.scope import compute_scope, in_scope
from portal.stores.audit import AuditSink
from portal.stores.directory import DirectoryStore
from portal.stores.identity import IdentityProvider, LocalIdentityProvider
from portal.stores.requests import RequestStore
from portal.stores.roles import RoleStore

logger = logging.getLogger(__name__)

DEFAULT_TEMP_PASSWORD = "123456"
DEFAULT_LIST_LIMIT = 200
MAX_LIST_LIMIT = 500


def _temp_password() -> str:
    return current_app.config.get("REGISTRATION_TEMP_PASSWORD") or DEFAULT_TEMP_PASSWORD


def _require_reviewer(actor_id, requests, roles, directory):
    scope = compute_scope(actor_id, requests=requests, roles=roles, directory=directory)
    if not scope.effective_role or not scope.studio_access:
        raise AuthorizationError("Insufficient permissions")
    return scope


def _load_pending(requests, registration_id):
    reg = requests.get_registration(registration_id)
    if reg is None or not reg.is_pending:
        raise NotFoundError("PendingRegistration", registration_id)
    return reg


def resolve_area_code(stored, override=None) -> tuple[str, bool]:
    """Return ``(desired_code, is_guest)``; the override wins over the stored code.

    Either value naming an external area forces the guest classification.
    """
    stored_code = normalize_code(stored)
    override_code = normalize_code(override)
    if stored_code in EXTERNAL_AREA_CODES or override_code in EXTERNAL_AREA_CODES:
        return GUEST_TEAM_ID, True
    return override_code or stored_code, False


# ═════════════════════════════════════════════════════════════════════════════
# Approve
# ═════════════════════════════════════════════════════════════════════════════

def approve_registration(
    registration_id: str,
    actor_id: str,
    *,
    sigla_area: str | None = None,
    operational_base: str | None = None,
    grant_curator: bool = False,
    notes: str | None = None,
    identity: IdentityProvider | None = None,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    directory: DirectoryStore | None = None,
    audit: AuditSink | None = None,
) -> str:
    """Approve a pending registration and return the new account id.

    Raises:
        AuthenticationError: unknown actor.
        AuthorizationError: no reviewer role, or area outside the actor's scope.
        NotFoundError: registration missing or no longer pending (incl. a lost race).
        ValidationError: registration has no date of birth.
        ConflictError: a profile or account already uses the registration's email.
        DependencyError: provisioning failed after the commit point.
    """
    identity = identity or LocalIdentityProvider()
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    directory = directory or DirectoryStore()
    audit = audit or AuditSink()

    # Checks only; nothing is written before the claim
    scope = _require_reviewer(actor_id, requests, roles, directory)
    reg = _load_pending(requests, registration_id)
    if reg.date_of_birth is None:
        raise ValidationError(
            "Registration is missing the date of birth",
            details={"date_of_birth": "required"},
        )

    desired, guest = resolve_area_code(reg.sigla_area, sigla_area)
    if not in_scope(desired, scope):
        raise AuthorizationError("Registration area is outside your scope", details={"sigla_area": desired})

    if requests.find_profile_by_email(reg.email) is not None:
        raise ConflictError("Profile", "email", reg.email)

    if guest:
        resolved_base = GUEST_TEAM_ID
    else:
        resolved_base = (operational_base or "").strip() or reg.operational_base
    before = reg.to_dict()

    # Commit point: claim the row
    claimed = requests.transition_registration(
        reg.id,
        REGISTRATION_APPROVED,
        reviewed_by=actor_id,
        review_notes=notes,
        sigla_area=desired or reg.sigla_area,
        operational_base=resolved_base,
    )
    if not claimed:
        db.session.rollback()
        raise NotFoundError("PendingRegistration", registration_id)

    saga = Saga("registration.approve")
    step = "create_account"
    try:
        account_id = identity.create_account(reg.email, _temp_password(), reg.name)
        saga.add("delete_account", lambda: identity.delete_account(account_id))

        step = "upsert_profile"
        profile = requests.upsert_profile(
            account_id,
            name=reg.name,
            email=(reg.email or "").strip().lower(),
            matricula=reg.matricula,
            date_of_birth=reg.date_of_birth,
            sigla_area=desired or reg.sigla_area,
            operational_base=resolved_base,
            must_change_password=True,
            needs_profile_completion=True,
        )

        # Organization
        step = "assign_org"
        assign_profile_team(profile, desired, directory)
        if not guest:
            profile.operational_base = resolved_base

        # Roles (duplicate grants are tolerated by the store)
        step = "grant_roles"
        roles.grant_role(account_id, ROLE_INVITED if guest else ROLE_COLLAB, granted_by=actor_id)
        if grant_curator:
            roles.grant_role(account_id, ROLE_CONTENT_CURATOR, granted_by=actor_id)
        db.session.flush()
    except ConflictError:
        db.session.rollback()
        saga.compensate()
        raise
    except Exception as exc:
        db.session.rollback()
        failed = saga.compensate()
        logger.exception(
            "Registration approval failed after claim",
            extra={"registration_id": registration_id, "step": step, "failed_compensations": failed},
        )
        raise DependencyError(
            "Could not provision the approved registration",
            details={"step": step},
        ) from exc

    # Audit (best-effort)
    side_effects.dispatch(
        "audit.registration.approve",
        audit.append,
        actor_id,
        "registration.approve",
        "registration",
        reg.id,
        before={"status": before["status"], "sigla_area": before["sigla_area"]},
        after={"status": REGISTRATION_APPROVED, "account_id": account_id, "sigla_area": desired,
               "guest": guest, "content_curator": bool(grant_curator)},
    )

    try:
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        failed = saga.compensate()
        logger.exception(
            "Registration approval failed at commit",
            extra={"registration_id": registration_id, "step": "commit", "failed_compensations": failed},
        )
        raise DependencyError(
            "Could not provision the approved registration",
            details={"step": "commit"},
        ) from exc

    logger.info(
        "Registration approved",
        extra={"registration_id": reg.id, "account_id": account_id, "actor_id": actor_id, "guest": guest},
    )
    return account_id


# ═════════════════════════════════════════════════════════════════════════════
# Reject
# ═════════════════════════════════════════════════════════════════════════════

def reject_registration(
    registration_id: str,
    actor_id: str,
    notes: str | None,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    directory: DirectoryStore | None = None,
    audit: AuditSink | None = None,
) -> dict:
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    directory = directory or DirectoryStore()
    audit = audit or AuditSink()

    scope = _require_reviewer(actor_id, requests, roles, directory)
    notes = (notes or "").strip()
    if not notes:
        raise ValidationError("notes is required to reject a registration", details={"notes": "required"})

    reg = _load_pending(requests, registration_id)
    area, _ = resolve_area_code(reg.sigla_area)
    if not in_scope(area, scope):
        raise AuthorizationError("Registration area is outside your scope", details={"sigla_area": area})

    if not requests.transition_registration(
        reg.id, REGISTRATION_REJECTED, reviewed_by=actor_id, review_notes=notes,
    ):
        db.session.rollback()
        raise NotFoundError("PendingRegistration", registration_id)

    side_effects.dispatch(
        "audit.registration.reject",
        audit.append,
        actor_id,
        "registration.reject",
        "registration",
        reg.id,
        before={"status": REGISTRATION_PENDING},
        after={"status": REGISTRATION_REJECTED, "notes": notes},
    )
    db.session.commit()
    logger.info("Registration rejected", extra={"registration_id": reg.id, "actor_id": actor_id})
    return requests.get_registration(reg.id).to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# List
# ═════════════════════════════════════════════════════════════════════════════

def list_pending_registrations(
    actor_id: str,
    *,
    status: str = REGISTRATION_PENDING,
    limit: int | None = None,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    directory: DirectoryStore | None = None,
) -> list[dict]:
    """Registrations the actor may review, newest first.

    admin / gerente_djt see every row; everyone else sees what their scope
    admits plus guest / external sign-ups.
    """
    requests = requests or RequestStore()
    scope = compute_scope(actor_id, requests=requests, roles=roles, directory=directory)
    if not scope.studio_access:
        raise AuthorizationError("Insufficient permissions")

    status = (status or REGISTRATION_PENDING).strip().lower()
    if status not in REGISTRATION_STATUSES:
        raise ValidationError(f"Unknown status: {status}", details={"status": "invalid"})

    try:
        limit = int(limit) if limit is not None else DEFAULT_LIST_LIMIT
    except (TypeError, ValueError):
        limit = DEFAULT_LIST_LIMIT
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    if scope.sees_everything:
        rows = requests.list_registrations(status=status, limit=limit)
        return [r.to_dict() for r in rows]

    # Stored codes are free text; compare them the way approval does.
    visible = []
    for reg in requests.iter_registrations(status=status):
        area, _ = resolve_area_code(reg.sigla_area)
        if in_scope(area, scope):
            visible.append(reg.to_dict())
            if len(visible) >= limit:
                break
    return visible
