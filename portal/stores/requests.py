"""
Request store — registrations, finance requests and the profiles they touch.

Status changes are compare-and-swap updates (``UPDATE … WHERE id = ? AND
status = ?``): the caller learns from the returned row count whether it won.
Nothing here commits; the calling service owns the transaction.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select, update

from portal.core.exceptions import InvalidTransitionError
from portal.models import db
from portal.models.auth import Profile
from portal.models.finance import (
    FinanceRequest,
    FinanceRequestAttachment,
    FinanceRequestItem,
    FinanceRequestStatusHistory,
)
from portal.models.registration import (
    REGISTRATION_PENDING,
    PendingRegistration,
    validate_registration_transition,
)

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", r"\%").replace("_", r"\_")


class RequestStore:

    # ═════════════════════════════════════════════════════════════════════
    # Profiles
    # ═════════════════════════════════════════════════════════════════════

    def get_profile(self, profile_id: str) -> Profile | None:
        if not profile_id:
            return None
        return db.session.get(Profile, profile_id)

    def find_profile_by_email(self, email: str) -> Profile | None:
        email = (email or "").strip().lower()
        if not email:
            return None
        return db.session.execute(
            select(Profile).where(func.lower(Profile.email) == email)
        ).scalars().first()

    def upsert_profile(self, profile_id: str, **fields) -> Profile:
        profile = self.get_profile(profile_id)
        if profile is None:
            profile = Profile(id=profile_id)
            db.session.add(profile)
        for key, value in fields.items():
            setattr(profile, key, value)
        db.session.flush()
        return profile

    # ═════════════════════════════════════════════════════════════════════
    # Registrations
    # ═════════════════════════════════════════════════════════════════════

    def get_registration(self, registration_id: str) -> PendingRegistration | None:
        if not registration_id:
            return None
        return db.session.get(PendingRegistration, registration_id)

    def transition_registration(
        self,
        registration_id: str,
        new_status: str,
        *,
        reviewed_by: str,
        review_notes: str | None = None,
        **fields,
    ) -> bool:
        """Move a registration out of ``pending``. False if it was no longer pending."""
        if not validate_registration_transition(REGISTRATION_PENDING, new_status):
            raise InvalidTransitionError("PendingRegistration", REGISTRATION_PENDING, new_status)
        values = {
            "status": new_status,
            "reviewed_by": reviewed_by,
            "reviewed_at": datetime.now(timezone.utc),
            "review_notes": review_notes,
            **fields,
        }
        result = db.session.execute(
            update(PendingRegistration)
            .where(
                PendingRegistration.id == registration_id,
                PendingRegistration.status == REGISTRATION_PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def list_registrations(self, *, status: str, limit: int = 200) -> list[PendingRegistration]:
        stmt = (
            select(PendingRegistration)
            .where(PendingRegistration.status == status)
            .order_by(PendingRegistration.created_at.desc())
            .limit(limit)
        )
        return list(db.session.execute(stmt).scalars())

    def iter_registrations(self, *, status: str, batch_size: int = 200):
        """Stream registrations in ``status``, newest first, ``batch_size`` rows per fetch."""
        stmt = (
            select(PendingRegistration)
            .where(PendingRegistration.status == status)
            .order_by(PendingRegistration.created_at.desc())
            .execution_options(yield_per=batch_size)
        )
        result = db.session.execute(stmt)
        try:
            yield from result.scalars()
        finally:
            result.close()

    # ═════════════════════════════════════════════════════════════════════
    # Finance requests
    # ═════════════════════════════════════════════════════════════════════

    def insert_finance_request(self, **fields) -> FinanceRequest:
        row = FinanceRequest(**fields)
        db.session.add(row)
        db.session.flush()
        return row

    def insert_finance_items(self, request_id: str, items: list[dict]) -> dict[int, str]:
        """Insert items and return ``{idx: item_id}``."""
        ids = {}
        for data in items:
            item = FinanceRequestItem(request_id=request_id, **data)
            db.session.add(item)
            db.session.flush()
            ids[item.idx] = item.id
        return ids

    def insert_finance_attachments(self, request_id: str, attachments: list[dict]) -> None:
        for data in attachments:
            db.session.add(FinanceRequestAttachment(request_id=request_id, **data))
        db.session.flush()

    def get_finance_request(self, request_id: str) -> FinanceRequest | None:
        if not request_id:
            return None
        return db.session.get(FinanceRequest, request_id)

    def protocol_exists(self, protocol: str) -> bool:
        return db.session.execute(
            select(FinanceRequest.id).where(FinanceRequest.protocol == protocol)
        ).first() is not None

    def swap_finance_status(self, request_id: str, expected: str, new_status: str, **fields) -> bool:
        """Compare-and-swap the status. False when another writer moved it first."""
        result = db.session.execute(
            update(FinanceRequest)
            .where(FinanceRequest.id == request_id, FinanceRequest.status == expected)
            .values(status=new_status, updated_at=datetime.now(timezone.utc), **fields)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def mark_analyst_viewed(self, request_id: str) -> bool:
        """Stamp ``analyst_viewed_at`` only if it was never set."""
        result = db.session.execute(
            update(FinanceRequest)
            .where(FinanceRequest.id == request_id, FinanceRequest.analyst_viewed_at.is_(None))
            .values(analyst_viewed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def append_history(
        self,
        request_id: str,
        *,
        changed_by: str | None,
        from_status: str | None,
        to_status: str,
        observation: str | None = None,
    ) -> FinanceRequestStatusHistory:
        row = FinanceRequestStatusHistory(
            request_id=request_id,
            changed_by=changed_by,
            from_status=from_status,
            to_status=to_status,
            observation=observation,
        )
        db.session.add(row)
        db.session.flush()
        return row

    def list_history(self, request_id: str) -> list[FinanceRequestStatusHistory]:
        return list(db.session.execute(
            select(FinanceRequestStatusHistory)
            .where(FinanceRequestStatusHistory.request_id == request_id)
            .order_by(FinanceRequestStatusHistory.id)
        ).scalars())

    def delete_finance_request(self, request_id: str) -> bool:
        # Children first so SQLite without ON DELETE support behaves like PostgreSQL.
        for model in (FinanceRequestAttachment, FinanceRequestStatusHistory, FinanceRequestItem):
            db.session.execute(delete(model).where(model.request_id == request_id))
        result = db.session.execute(
            delete(FinanceRequest)
            .where(FinanceRequest.id == request_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def query_finance_requests(
        self,
        *,
        created_by: str | None = None,
        status: str | None = None,
        request_kind: str | None = None,
        company: str | None = None,
        coordination: str | None = None,
        date_start_from=None,
        date_start_to=None,
        q: str | None = None,
        limit: int = 120,
    ) -> list[FinanceRequest]:
        """Filtered listing, most recently updated first."""
        stmt = select(FinanceRequest)
        if created_by:
            stmt = stmt.where(FinanceRequest.created_by == created_by)
        if status:
            stmt = stmt.where(FinanceRequest.status == status)
        if request_kind:
            stmt = stmt.where(FinanceRequest.request_kind == request_kind)
        if company:
            stmt = stmt.where(FinanceRequest.company == company)
        if coordination:
            stmt = stmt.where(FinanceRequest.coordination == coordination)
        if date_start_from:
            stmt = stmt.where(FinanceRequest.date_start >= date_start_from)
        if date_start_to:
            stmt = stmt.where(FinanceRequest.date_start <= date_start_to)
        if q:
            needle = f"%{_escape_like(q)}%"
            stmt = stmt.where(or_(
                FinanceRequest.created_by_name.ilike(needle, escape="\\"),
                FinanceRequest.created_by_email.ilike(needle, escape="\\"),
            ))
        stmt = stmt.order_by(FinanceRequest.updated_at.desc(), FinanceRequest.id).limit(limit)
        return list(db.session.execute(stmt).scalars())
