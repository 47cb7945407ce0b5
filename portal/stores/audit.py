"""Audit sink — append-only decision trail backed by ``audit_logs``."""

from portal.models.audit import AuditLog, write_audit


class AuditSink:

    def append(
        self,
        actor_id: str | None,
        action: str,
        entity_type: str,
        entity_id: str,
        before: dict | None = None,
        after: dict | None = None,
    ) -> AuditLog:
        return write_audit(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            before=before,
            after=after,
        )
