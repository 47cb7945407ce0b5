"""
Identity provider — creates and deletes login accounts.

``IdentityProvider`` is the interface the registration workflow depends on.
``LocalIdentityProvider`` keeps accounts in the ``identity_accounts`` table
with bcrypt password hashes. An external IdP adapter only has to implement
the two methods.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from portal.core.exceptions import ConflictError, DependencyError
from portal.models import db
from portal.models.auth import IdentityAccount
from portal.utils.crypto import hash_password

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Interface for account provisioning."""

    def create_account(self, email: str, temp_password: str, display_name: str | None = None) -> str:
        """Create a pre-confirmed account and return its id."""
        raise NotImplementedError

    def delete_account(self, account_id: str) -> None:
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):

    def create_account(self, email: str, temp_password: str, display_name: str | None = None) -> str:
        email = (email or "").strip().lower()
        if not email:
            raise DependencyError("Identity account requires an email")

        exists = db.session.execute(
            select(IdentityAccount.id).where(IdentityAccount.email == email)
        ).first()
        if exists:
            raise ConflictError("IdentityAccount", "email", email)

        account = IdentityAccount(
            email=email,
            password_hash=hash_password(temp_password),
            email_confirmed=True,
            display_name=display_name,
        )
        try:
            with db.session.begin_nested():
                db.session.add(account)
        except IntegrityError as exc:
            raise ConflictError("IdentityAccount", "email", email) from exc

        logger.info("Identity account created", extra={"account_id": account.id})
        return account.id

    def delete_account(self, account_id: str) -> None:
        account = db.session.get(IdentityAccount, account_id)
        if account is None:
            return
        db.session.delete(account)
        db.session.flush()
        logger.info("Identity account deleted", extra={"account_id": account_id})
