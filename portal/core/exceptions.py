"""
Portal-wide exception hierarchy.

Every service raises one of these. Blueprints register a single handler for
``PortalError`` and get consistent HTTP status codes and machine codes
everywhere.

Usage:
    from portal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="PendingRegistration", resource_id=reg_id)
    raise ValidationError("Invalid payload", details={"amountBrl": "..."})
"""

from portal.utils.errors import E, error_body


class PortalError(Exception):
    """Base class: carries a machine code, an HTTP status and optional details."""

    code = E.INTERNAL
    status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return error_body(self.code, self.message, self.details)


class ValidationError(PortalError):
    """Input failed a business rule. ``details`` is keyed by payload field name.

    All problems found in one pass are reported together.
    """

    code = E.VALIDATION_INVALID
    status = 400


class AuthenticationError(PortalError):
    """No actor could be resolved (missing/invalid token or unknown profile)."""

    code = E.UNAUTHORIZED
    status = 401

    def __init__(self, message: str = "Authentication required", details: dict | None = None) -> None:
        super().__init__(message, details)


class AuthorizationError(PortalError):
    """The actor is known but may not perform this operation on this target."""

    code = E.FORBIDDEN
    status = 403

    def __init__(self, message: str = "Forbidden", details: dict | None = None) -> None:
        super().__init__(message, details)


class NotFoundError(PortalError):
    """Raised when a requested resource does not exist (or is no longer actionable).

    Args:
        resource: Human-readable model/entity name (e.g. "FinanceRequest").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    code = E.NOT_FOUND
    status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)

    def to_dict(self) -> dict:
        return error_body(self.code, f"{self.resource} not found")


class ConflictError(PortalError):
    """Raised when an operation would duplicate a unique value or lost a race.

    Args:
        resource: Model name.
        field: The unique field (or ``status`` for a lost compare-and-swap).
        value: The conflicting value.
    """

    code = E.CONFLICT_DUPLICATE
    status = 409

    def __init__(self, resource: str, field: str, value: str | None = None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class InvalidTransitionError(PortalError):
    """A status transition not allowed by the state machine."""

    code = E.CONFLICT_STATE
    status = 409

    def __init__(self, resource: str, from_status: str | None, to_status: str) -> None:
        self.resource = resource
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{resource} cannot transition from {from_status!r} to {to_status!r}",
            details={"from_status": from_status, "to_status": to_status},
        )


class DependencyError(PortalError):
    """A collaborator (identity provider, store) failed after the commit point."""

    code = E.DEPENDENCY
    status = 502
