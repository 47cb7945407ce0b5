"""Role store — user_roles grants."""

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from portal.core.exceptions import ValidationError
from portal.models import db
from portal.models.auth import ROLES, UserRole, normalize_role

logger = logging.getLogger(__name__)


class RoleStore:

    def get_roles(self, user_id: str) -> set[str]:
        """Normalized role names held by ``user_id`` (empty set for unknown users)."""
        rows = db.session.execute(
            select(UserRole.role).where(UserRole.user_id == user_id)
        ).scalars()
        return {normalize_role(r) for r in rows} - {""}

    def grant_role(self, user_id: str, role: str, granted_by: str | None = None) -> bool:
        """Grant ``role``; returns False when the grant already existed.

        Idempotent: a duplicate grant (including one lost to a concurrent
        insert) is not an error. Unknown role names raise ValidationError.
        """
        role = normalize_role(role)
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role!r}", details={"role": "invalid"})
        existing = db.session.execute(
            select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)
        ).first()
        if existing:
            return False
        try:
            with db.session.begin_nested():
                db.session.add(UserRole(user_id=user_id, role=role, granted_by=granted_by))
        except IntegrityError:
            logger.info("Duplicate role grant ignored", extra={"user_id": user_id, "role": role})
            return False
        return True

    def revoke_role(self, user_id: str, role: str) -> bool:
        result = db.session.execute(
            delete(UserRole).where(UserRole.user_id == user_id, UserRole.role == normalize_role(role))
        )
        return result.rowcount > 0
