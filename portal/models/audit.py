"""
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for workflow decisions.
"""

import json
from datetime import UTC, datetime

from portal.models import db


class AuditLog(db.Model):
    """
    Immutable audit trail for every workflow decision.

    One row per action. ``before_json`` / ``after_json`` carry the relevant
    snapshot on either side of the change.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    actor_id = db.Column(
        db.String(36), nullable=True,
        comment="Profile id of the actor (NULL for system entries)",
    )
    action = db.Column(
        db.String(60), nullable=False,
        comment="registration.approve | finance_request.cancel | …",
    )

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)

    before_json = db.Column(db.Text, default="{}")
    after_json = db.Column(db.Text, default="{}")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _load(raw) -> dict:
        try:
            return json.loads(raw or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    @property
    def before(self) -> dict:
        return self._load(self.before_json)

    @property
    def after(self) -> dict:
        return self._load(self.after_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "before": self.before,
            "after": self.after,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: str | None = None,
    before: dict | None = None,
    after: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=json.dumps(before or {}, default=str),
        after_json=json.dumps(after or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
