"""
Auth Models — identity accounts, profiles, role grants.

  IdentityAccount  local identity-provider store (email + bcrypt hash)
  Profile          the actor: org position cache + flags
  UserRole         one row per (profile, role) grant

Role names are stored lower-case exactly as listed in ``ROLES``. Legacy
aliases found in older rows are mapped through ``ROLE_ALIASES`` on read.
"""

import uuid
from datetime import datetime, timezone

from portal.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# ROLE CATALOGUE
# ═══════════════════════════════════════════════════════════════
ROLE_ADMIN = "admin"
ROLE_MANAGER = "gerente_djt"
ROLE_DIV_MANAGER = "gerente_divisao_djtx"
ROLE_COORD = "coordenador_djtx"
ROLE_TEAM_LEADER = "lider_equipe"
ROLE_COLLAB = "colaborador"
ROLE_INVITED = "invited"
ROLE_CONTENT_CURATOR = "content_curator"
ROLE_FINANCE_ANALYST = "analista_financeiro"
ROLE_XP_ADJUSTER = "xp_adjuster"
ROLE_QUIZ_ADMIN = "quiz_admin"

# Most senior first. Effective role = first of these the actor holds.
ROLE_PRECEDENCE = (
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_DIV_MANAGER,
    ROLE_COORD,
    ROLE_TEAM_LEADER,
)

# Roles that grant studio (back-office) access on their own.
STAFF_ROLES = frozenset({ROLE_ADMIN, ROLE_MANAGER, ROLE_DIV_MANAGER, ROLE_COORD})

ROLE_ALIASES = {
    "gerente": ROLE_MANAGER,
    "lider_divisao": ROLE_DIV_MANAGER,
    "coordenador": ROLE_COORD,
}

ROLES = frozenset({
    *ROLE_PRECEDENCE,
    ROLE_COLLAB,
    ROLE_INVITED,
    ROLE_CONTENT_CURATOR,
    ROLE_FINANCE_ANALYST,
    ROLE_XP_ADJUSTER,
    ROLE_QUIZ_ADMIN,
})


def normalize_role(raw) -> str:
    """Trim a stored role name and resolve legacy aliases."""
    role = str(raw or "").strip().lower()
    return ROLE_ALIASES.get(role, role)


# ═══════════════════════════════════════════════════════════════
# 1. IDENTITY ACCOUNTS
# ═══════════════════════════════════════════════════════════════
class IdentityAccount(db.Model):
    __tablename__ = "identity_accounts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    email_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    display_name = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "email_confirmed": self.email_confirmed,
            "display_name": self.display_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. PROFILES
# ═══════════════════════════════════════════════════════════════
class Profile(db.Model):
    __tablename__ = "profiles"
    __table_args__ = (
        db.Index("ix_profiles_email", "email"),
        db.Index("ix_profiles_team", "team_id"),
    )

    # Same id as the IdentityAccount (no FK: accounts may live in an external IdP).
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200))
    email = db.Column(db.String(200), unique=True)
    matricula = db.Column(db.String(80))
    date_of_birth = db.Column(db.Date)

    # Free-text area code as typed at sign-up, and the normalized org cache.
    sigla_area = db.Column(db.String(64))
    operational_base = db.Column(db.String(120))
    team_id = db.Column(db.String(32), db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    coord_id = db.Column(db.String(32), nullable=True)
    division_id = db.Column(db.String(32), nullable=True)

    is_leader = db.Column(db.Boolean, default=False, nullable=False)
    studio_access = db.Column(db.Boolean, default=False, nullable=False)
    must_change_password = db.Column(db.Boolean, default=False, nullable=False)
    needs_profile_completion = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    user_roles = db.relationship(
        "UserRole", back_populates="profile", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def role_names(self):
        """Normalized role names granted to this profile."""
        return sorted({normalize_role(ur.role) for ur in self.user_roles.all()} - {""})

    def to_dict(self, include_roles=False):
        d = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "matricula": self.matricula,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "sigla_area": self.sigla_area,
            "operational_base": self.operational_base,
            "team_id": self.team_id,
            "coord_id": self.coord_id,
            "division_id": self.division_id,
            "is_leader": self.is_leader,
            "studio_access": self.studio_access,
            "must_change_password": self.must_change_password,
        }
        if include_roles:
            d["roles"] = self.role_names
        return d

    def __repr__(self):
        return f"<Profile {self.id} {self.email}>"


# ═══════════════════════════════════════════════════════════════
# 3. USER_ROLES
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role", name="uq_user_role"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(db.String(50), nullable=False)
    granted_by = db.Column(db.String(36))
    created_at = db.Column(db.DateTime, default=_utcnow)

    profile = db.relationship("Profile", back_populates="user_roles")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "granted_by": self.granted_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
