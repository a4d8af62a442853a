"""
Domain exceptions for the workflow layer.

These exceptions are raised by the record model, the bundle mutator, the
orchestrator and the collaborator clients. They carry no HTTP status codes;
the API layer maps them in ``crvs_workflow.api.exception_handlers``.
"""


class CrvsError(Exception):
    """Base exception for all workflow-specific errors."""


# Base domain exceptions
class EntityNotFoundError(CrvsError):
    """Raised when a resource is not found in the document store."""

    pass


class AuthenticationError(CrvsError):
    """Raised when the bearer token is missing or cannot be validated."""

    pass


class AuthorizationError(CrvsError):
    """Raised when the actor lacks the scope required for an action."""

    pass


class ValidationError(CrvsError):
    """Raised when data validation fails."""

    pass


class BusinessRuleViolationError(CrvsError):
    """Raised when a business rule is violated."""

    pass


class ConfigurationError(CrvsError):
    """Raised when there's a configuration problem."""

    pass


# Authorization exceptions
class InsufficientScopeError(AuthorizationError):
    """Raised when the token carries no scope usable for the requested action."""

    pass


# Record shape exceptions
class MalformedRecordError(ValidationError):
    """Raised when a required resource (task, composition) is missing from a record."""

    pass


class InvalidBundleError(ValidationError):
    """Raised when a bundle is structurally unusable for the requested operation."""

    pass


# Workflow state exceptions
class DuplicateTransitionError(BusinessRuleViolationError):
    """Raised when a record is already in the status about to be written."""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"Declaration is already in {status} state")


class InvalidTransitionError(BusinessRuleViolationError):
    """Raised when a status change is not allowed by the transition table."""

    def __init__(self, previous: str | None, target: str) -> None:
        self.previous = previous
        self.target = target
        super().__init__(f"Cannot move declaration from {previous or 'a new record'} to {target}")


class ConcurrentModificationError(BusinessRuleViolationError):
    """Raised when a conditional write loses against a concurrent writer."""

    pass


# External service exceptions
class ExternalServiceError(CrvsError):
    """Base exception for failures of collaborating services."""

    def __init__(
        self, message: str = "", status_code: int | None = None, detail: str | None = None
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class ExternalLookupError(ExternalServiceError):
    """Raised when a practitioner, location or office lookup fails."""

    pass


class PersistenceError(ExternalServiceError):
    """Raised when the document store rejects a write."""

    pass


class PersistenceConflictError(PersistenceError):
    """Raised when the document store answers a bundle submission with HTTP 409."""

    pass


class ExternalValidationError(ExternalServiceError):
    """Raised when the external registration validation call fails."""

    pass


class NotificationError(ExternalServiceError):
    """Raised when an event cannot be delivered to the notification pipeline."""

    pass
