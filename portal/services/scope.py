"""
Scope Computer — who may act on which org unit.

``compute_scope`` reads an actor's roles and org position once; ``in_scope``
then answers, for a target area code, whether that actor may act on it:

    admin / gerente_djt     everything
    gerente_divisao_djtx    codes under their division
    coordenador_djtx        codes under their division or coordination, or their team
    lider_equipe            their own team only
    external / guest codes  always

The finance gates at the bottom are coarse role-set checks, independent of
org position.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field

from flask import current_app, has_app_context

from portal.core.exceptions import AuthenticationError
from portal.models.auth import (
    ROLE_ADMIN,
    ROLE_ALIASES,
    ROLE_COORD,
    ROLE_DIV_MANAGER,
    ROLE_FINANCE_ANALYST,
    ROLE_INVITED,
    ROLE_MANAGER,
    ROLE_PRECEDENCE,
    ROLE_TEAM_LEADER,
    STAFF_ROLES,
    normalize_role,
)
from portal.models.org import EXTERNAL_AREA_CODES, GUEST_TEAM_ID
from portal.services.org_hierarchy import normalize_code
from portal.stores.directory import DirectoryStore
from portal.stores.requests import RequestStore
from portal.stores.roles import RoleStore

logger = logging.getLogger(__name__)

# Roles whose holders may review and move finance requests.
FINANCE_MANAGER_ROLES = frozenset({
    ROLE_ADMIN, ROLE_MANAGER, ROLE_DIV_MANAGER, ROLE_COORD, ROLE_TEAM_LEADER,
    *ROLE_ALIASES,
})


@dataclass
class Scope:
    actor_id: str
    roles: frozenset = field(default_factory=frozenset)
    effective_role: str | None = None
    team_id: str | None = None
    coord_id: str | None = None
    division_id: str | None = None
    studio_access: bool = False
    is_leader: bool = False

    def has_role(self, role: str) -> bool:
        return normalize_role(role) in self.roles

    @property
    def sees_everything(self) -> bool:
        return self.effective_role in (ROLE_ADMIN, ROLE_MANAGER)

    def to_dict(self) -> dict:
        return {
            "actor_id": self.actor_id,
            "roles": sorted(self.roles),
            "effective_role": self.effective_role,
            "team_id": self.team_id,
            "coord_id": self.coord_id,
            "division_id": self.division_id,
            "studio_access": self.studio_access,
            "is_leader": self.is_leader,
        }


def effective_role(roles, is_leader: bool = False) -> str | None:
    """Most senior staff role held; ``is_leader`` counts as ``lider_equipe``."""
    held = {normalize_role(r) for r in roles or ()}
    if is_leader:
        held.add(ROLE_TEAM_LEADER)
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return None


def compute_scope(
    actor_id: str,
    *,
    requests: RequestStore | None = None,
    roles: RoleStore | None = None,
    directory: DirectoryStore | None = None,
) -> Scope:
    requests = requests or RequestStore()
    roles = roles or RoleStore()
    directory = directory or DirectoryStore()

    profile = requests.get_profile(actor_id)
    if profile is None:
        raise AuthenticationError("Unknown actor")

    role_set = frozenset(roles.get_roles(actor_id))
    is_leader = bool(profile.is_leader)
    studio = (
        bool(profile.studio_access)
        or bool(role_set & STAFF_ROLES)
        or ROLE_TEAM_LEADER in role_set
        or is_leader
    )

    team_id = profile.team_id or normalize_code(profile.sigla_area or profile.operational_base) or None
    coord_id = profile.coord_id or None
    division_id = profile.division_id or None

    if team_id and not coord_id:
        team = directory.get_team(team_id)
        coord_id = team.coord_id if team else None
    if coord_id and not division_id:
        coord = directory.get_coordination(coord_id)
        division_id = coord.division_id if coord else None

    return Scope(
        actor_id=actor_id,
        roles=role_set,
        effective_role=effective_role(role_set, is_leader),
        team_id=team_id,
        coord_id=coord_id,
        division_id=division_id,
        studio_access=studio,
        is_leader=is_leader,
    )


def in_scope(target_code, scope: Scope) -> bool:
    target = str(target_code or "").strip().upper()
    if not target:
        return False
    if target in EXTERNAL_AREA_CODES:
        return True

    div = (scope.division_id or "").upper()
    coord = (scope.coord_id or "").upper()
    team = (scope.team_id or "").upper()
    role = scope.effective_role

    if role in (ROLE_ADMIN, ROLE_MANAGER):
        return True
    if role == ROLE_DIV_MANAGER:
        return bool(div) and target.startswith(div)
    if role == ROLE_COORD:
        return (
            (bool(div) and target.startswith(div))
            or (bool(coord) and target.startswith(coord))
            or (bool(team) and target == team)
        )
    if role == ROLE_TEAM_LEADER:
        return bool(team) and target == team
    return False


# ═════════════════════════════════════════════════════════════════════════════
# Finance gates
# ═════════════════════════════════════════════════════════════════════════════

def _field(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _role_set(roles) -> set[str]:
    return {str(r or "").strip() for r in roles or ()} - {""}


def is_guest_profile(profile, roles=()) -> bool:
    if ROLE_INVITED in _role_set(roles):
        return True
    for name in ("team_id", "sigla_area", "operational_base", "coord_id", "division_id"):
        if str(_field(profile, name) or "").strip().upper() == GUEST_TEAM_ID:
            return True
    return False


_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def name_key(name) -> str:
    """Lower-case, accent-free, punctuation-collapsed form of a person's name."""
    s = unicodedata.normalize("NFD", str(name or "").lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub(" ", s).strip()


def _configured_name_keys():
    if not has_app_context():
        return ()
    return current_app.config.get("FINANCE_ANALYST_NAME_KEYS", ()) or ()


def is_finance_analyst_by_name(profile, name_keys=None) -> bool:
    """True when the profile name contains every token of one configured key group."""
    groups = _configured_name_keys() if name_keys is None else name_keys
    if not groups:
        return False
    tokens = set(name_key(_field(profile, "name")).split())
    if not tokens:
        return False
    return any(group and all(t in tokens for t in group) for group in groups)


def is_finance_analyst(roles=(), profile=None, *, name_keys=None) -> bool:
    if ROLE_FINANCE_ANALYST in _role_set(roles):
        return True
    return profile is not None and is_finance_analyst_by_name(profile, name_keys)


def can_manage_finance_requests(roles=(), profile=None, *, name_keys=None) -> bool:
    if _role_set(roles) & FINANCE_MANAGER_ROLES:
        return True
    if is_finance_analyst(roles, profile, name_keys=name_keys):
        return True
    return bool(_field(profile, "is_leader"))


def can_purge_finance_requests(roles=()) -> bool:
    return ROLE_ADMIN in _role_set(roles)
