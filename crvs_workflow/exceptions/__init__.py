"""Exceptions for the workflow service."""

from crvs_workflow.exceptions.domain import (
    AuthenticationError,
    AuthorizationError,
    BusinessRuleViolationError,
    ConcurrentModificationError,
    ConfigurationError,
    CrvsError,
    DuplicateTransitionError,
    EntityNotFoundError,
    ExternalLookupError,
    ExternalServiceError,
    ExternalValidationError,
    InsufficientScopeError,
    InvalidBundleError,
    InvalidTransitionError,
    MalformedRecordError,
    NotificationError,
    PersistenceConflictError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "BusinessRuleViolationError",
    "ConcurrentModificationError",
    "ConfigurationError",
    "CrvsError",
    "DuplicateTransitionError",
    "EntityNotFoundError",
    "ExternalLookupError",
    "ExternalServiceError",
    "ExternalValidationError",
    "InsufficientScopeError",
    "InvalidBundleError",
    "InvalidTransitionError",
    "MalformedRecordError",
    "NotificationError",
    "PersistenceConflictError",
    "PersistenceError",
    "ValidationError",
]
