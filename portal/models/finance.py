"""
Finance request models — reimbursement (Reembolso) and advance
(Adiantamento) requests.

Models:
    - FinanceRequest                 the request header
    - FinanceRequestItem             one line per expense (multi-item form)
    - FinanceRequestAttachment       receipts / supporting files
    - FinanceRequestStatusHistory    append-only transition trail

Status machine (FINANCE_STATUS_TRANSITIONS):
    Enviado    → Em análise | Aprovado | Reprovado | Pago | Cancelado
    Em análise → Aprovado | Reprovado | Pago
    Aprovado   → Em análise | Reprovado | Pago
    Reprovado  → Em análise | Aprovado | Pago
    Pago       → Em análise | Aprovado | Reprovado
    Cancelado  → (terminal)

Cancelado is only reached through the owner's cancel action, never through
the manager status update.
"""

import uuid
from datetime import datetime, timezone

from portal.models import db

# ── Catalogues ───────────────────────────────────────────────────────────────

FINANCE_COMPANIES = ("CPFL Piratininga", "CPFL Santa Cruz")

KIND_REEMBOLSO = "Reembolso"
KIND_ADIANTAMENTO = "Adiantamento"
FINANCE_REQUEST_KINDS = (KIND_REEMBOLSO, KIND_ADIANTAMENTO)

EXPENSE_TYPE_ADIANTAMENTO = "Adiantamento"
EXPENSE_TYPE_MULTIPLE = "Múltiplos"
FINANCE_EXPENSE_TYPES = (
    "Transporte",
    "Quilometragem",
    "Abastecimento/Pedágio",
    "Estacionamento",
    "Almoço",
    "Jantar",
    "Hospedagem/Café da Manhã",
    "Materiais",
    "Serviços",
    "Outros",
    EXPENSE_TYPE_ADIANTAMENTO,
)

FINANCE_COORDINATIONS = (
    "Santos",
    "Cubatão",
    "Piraju",
    "Itapetininga",
    "Sudeste",
    "Sul",
    "Planejamento",
    "DJTV (Coordenadores)",
    "DJTB (Coordenadores)",
    "DJT (Gerentes + Coordenadora)",
)

STATUS_ENVIADO = "Enviado"
STATUS_EM_ANALISE = "Em análise"
STATUS_APROVADO = "Aprovado"
STATUS_REPROVADO = "Reprovado"
STATUS_PAGO = "Pago"
STATUS_CANCELADO = "Cancelado"

FINANCE_STATUSES = (
    STATUS_ENVIADO,
    STATUS_EM_ANALISE,
    STATUS_APROVADO,
    STATUS_REPROVADO,
    STATUS_PAGO,
    STATUS_CANCELADO,
)

_REVIEW_STATUSES = (STATUS_EM_ANALISE, STATUS_APROVADO, STATUS_REPROVADO, STATUS_PAGO)

FINANCE_STATUS_TRANSITIONS = {
    STATUS_ENVIADO: [*_REVIEW_STATUSES, STATUS_CANCELADO],
    **{s: [t for t in _REVIEW_STATUSES if t != s] for s in _REVIEW_STATUSES},
    STATUS_CANCELADO: [],
}

# Legacy spellings still sent by older clients.
_STATUS_ALIASES = {
    "em análise": STATUS_EM_ANALISE,
    "em analise": STATUS_EM_ANALISE,
}

FINANCE_CURRENCY = "BRL"
MAX_ATTACHMENTS_PER_REQUEST = 12
MAX_ITEMS_PER_REQUEST = 12
CANCEL_OBSERVATION = "Cancelado pelo usuário"


def normalize_finance_status(raw) -> str:
    """Map a user-supplied status onto its canonical spelling ('' if blank)."""
    s = str(raw or "").strip()
    if not s:
        return ""
    alias = _STATUS_ALIASES.get(s.lower())
    if alias:
        return alias
    for status in FINANCE_STATUSES:
        if status.lower() == s.lower():
            return status
    return s


def validate_finance_transition(old_status, new_status):
    """Return True if a FinanceRequest status transition is legal."""
    return new_status in FINANCE_STATUS_TRANSITIONS.get(old_status, [])


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# FinanceRequest
# ═════════════════════════════════════════════════════════════════════════════

class FinanceRequest(db.Model):
    __tablename__ = "finance_requests"
    __table_args__ = (
        db.Index("idx_fin_created_by", "created_by", "updated_at"),
        db.Index("idx_fin_status", "status"),
        db.Index("idx_fin_date_start", "date_start"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    protocol = db.Column(db.String(32), unique=True, nullable=False)

    created_by = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
    )
    created_by_name = db.Column(db.String(200))
    created_by_email = db.Column(db.String(200))
    created_by_matricula = db.Column(db.String(80))

    company = db.Column(db.String(80), nullable=False)
    training_operational = db.Column(db.Boolean, default=False, nullable=False)
    request_kind = db.Column(db.String(20), nullable=False)
    expense_type = db.Column(db.String(60), nullable=False)
    coordination = db.Column(db.String(80), nullable=False)
    date_start = db.Column(db.Date, nullable=False)
    date_end = db.Column(db.Date)
    description = db.Column(db.Text, nullable=False)
    amount_cents = db.Column(db.BigInteger)
    currency = db.Column(db.String(3), nullable=False, default=FINANCE_CURRENCY)

    status = db.Column(db.String(20), nullable=False, default=STATUS_ENVIADO)
    last_observation = db.Column(db.Text)
    analyst_viewed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "FinanceRequestItem", back_populates="request",
        cascade="all, delete-orphan", order_by="FinanceRequestItem.idx",
    )
    attachments = db.relationship(
        "FinanceRequestAttachment", back_populates="request",
        cascade="all, delete-orphan", order_by="FinanceRequestAttachment.id",
    )
    history = db.relationship(
        "FinanceRequestStatusHistory", back_populates="request",
        cascade="all, delete-orphan", order_by="FinanceRequestStatusHistory.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "protocol": self.protocol,
            "created_by": self.created_by,
            "created_by_name": self.created_by_name,
            "created_by_email": self.created_by_email,
            "created_by_matricula": self.created_by_matricula,
            "company": self.company,
            "training_operational": self.training_operational,
            "request_kind": self.request_kind,
            "expense_type": self.expense_type,
            "coordination": self.coordination,
            "date_start": self.date_start.isoformat() if self.date_start else None,
            "date_end": self.date_end.isoformat() if self.date_end else None,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "status": self.status,
            "last_observation": self.last_observation,
            "analyst_viewed_at": self.analyst_viewed_at.isoformat() if self.analyst_viewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<FinanceRequest {self.protocol} {self.status}>"


class FinanceRequestItem(db.Model):
    __tablename__ = "finance_request_items"
    __table_args__ = (
        db.UniqueConstraint("request_id", "idx", name="uq_fin_item_idx"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    request_id = db.Column(
        db.String(36), db.ForeignKey("finance_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    idx = db.Column(db.Integer, nullable=False)
    expense_type = db.Column(db.String(60), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount_cents = db.Column(db.BigInteger)
    currency = db.Column(db.String(3), nullable=False, default=FINANCE_CURRENCY)
    source = db.Column(db.String(20), default="legacy_v1")

    request = db.relationship("FinanceRequest", back_populates="items")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "idx": self.idx,
            "expense_type": self.expense_type,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
        }


class FinanceRequestAttachment(db.Model):
    __tablename__ = "finance_request_attachments"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.String(36), db.ForeignKey("finance_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    item_id = db.Column(
        db.String(36), db.ForeignKey("finance_request_items.id", ondelete="SET NULL"), nullable=True,
    )
    uploaded_by = db.Column(db.String(36))
    url = db.Column(db.String(1000), nullable=False)
    filename = db.Column(db.String(240))
    content_type = db.Column(db.String(120))
    size_bytes = db.Column(db.Integer)
    storage_bucket = db.Column(db.String(80))
    storage_path = db.Column(db.String(600))
    metadata_json = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=_utcnow)

    request = db.relationship("FinanceRequest", back_populates="attachments")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "item_id": self.item_id,
            "url": self.url,
            "filename": self.filename,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "storage_bucket": self.storage_bucket,
            "storage_path": self.storage_path,
            "metadata": self.metadata_json or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FinanceRequestStatusHistory(db.Model):
    """One immutable row per status transition of a FinanceRequest."""

    __tablename__ = "finance_request_status_history"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.String(36), db.ForeignKey("finance_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    changed_by = db.Column(db.String(36))
    from_status = db.Column(db.String(20))
    to_status = db.Column(db.String(20), nullable=False)
    observation = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow)

    request = db.relationship("FinanceRequest", back_populates="history")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "changed_by": self.changed_by,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "observation": self.observation,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
