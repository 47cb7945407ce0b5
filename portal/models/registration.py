"""
Pending registration model — self-service sign-ups awaiting review.

Rows are written by the public sign-up form (outside this package) and
consumed by ``portal.services.registration_service``.

State machine:
    pending → approved   (terminal)
    pending → rejected   (terminal)
"""

import uuid
from datetime import datetime, timezone

from portal.models import db

REGISTRATION_PENDING = "pending"
REGISTRATION_APPROVED = "approved"
REGISTRATION_REJECTED = "rejected"

REGISTRATION_STATUSES = {REGISTRATION_PENDING, REGISTRATION_APPROVED, REGISTRATION_REJECTED}

REGISTRATION_TRANSITIONS = {
    REGISTRATION_PENDING: [REGISTRATION_APPROVED, REGISTRATION_REJECTED],
    REGISTRATION_APPROVED: [],
    REGISTRATION_REJECTED: [],
}


def validate_registration_transition(old_status, new_status):
    """Return True if a PendingRegistration status transition is legal."""
    return new_status in REGISTRATION_TRANSITIONS.get(old_status, [])


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class PendingRegistration(db.Model):
    __tablename__ = "pending_registrations"
    __table_args__ = (
        db.Index("idx_reg_status_created", "status", "created_at"),
        db.Index("idx_reg_sigla", "sigla_area"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    matricula = db.Column(db.String(80))
    sigla_area = db.Column(db.String(64))
    operational_base = db.Column(db.String(120))
    date_of_birth = db.Column(db.Date)
    phone = db.Column(db.String(40))

    status = db.Column(db.String(20), nullable=False, default=REGISTRATION_PENDING)
    reviewed_by = db.Column(db.String(36))
    reviewed_at = db.Column(db.DateTime)
    review_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=_utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == REGISTRATION_PENDING

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "matricula": self.matricula,
            "sigla_area": self.sigla_area,
            "operational_base": self.operational_base,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "phone": self.phone,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PendingRegistration {self.id} {self.email} {self.status}>"
