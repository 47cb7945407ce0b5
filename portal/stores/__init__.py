"""
Collaborator stores used by the workflow services.

Each store is a thin class over ``db.session`` so services never touch model
queries directly, and tests can swap or patch a single collaborator to
simulate failures.

    DirectoryStore     org hierarchy (divisions, coordinations, teams)
    RoleStore          user_roles grants
    IdentityProvider   account creation / deletion (LocalIdentityProvider)
    RequestStore       registrations, finance requests, profiles
    AuditSink          append-only audit trail
"""

from portal.stores.audit import AuditSink
from portal.stores.directory import DirectoryStore
from portal.stores.identity import IdentityProvider, LocalIdentityProvider
from portal.stores.requests import RequestStore
from portal.stores.roles import RoleStore

__all__ = [
    "AuditSink",
    "DirectoryStore",
    "IdentityProvider",
    "LocalIdentityProvider",
    "RequestStore",
    "RoleStore",
]
