"""
Scope policy for workflow actions.

Maps token scopes to the status written when an action does not name one,
and lists the scopes allowed to run each orchestrator action.
"""

import enum
from collections.abc import Mapping, Sequence

from crvs_workflow.exceptions.domain import ConfigurationError, InsufficientScopeError
from crvs_workflow.models.auth import TokenClaims, UserScope
from crvs_workflow.models.base import RegStatus


class WorkflowAction(str, enum.Enum):
    SUBMIT = "submit"
    VALIDATE = "validate"
    UPDATE = "update"
    REGISTER = "register"
    CONFIRM_REGISTRATION = "confirm-registration"
    REJECT = "reject"
    CERTIFY = "certify"
    ISSUE = "issue"
    REQUEST_CORRECTION = "request-correction"
    REJECT_CORRECTION = "reject-correction"
    APPROVE_CORRECTION = "approve-correction"
    MARK_DUPLICATE = "mark-duplicate"
    MARK_NOT_DUPLICATE = "mark-not-duplicate"
    TOUCH = "touch"
    READ = "read"


# First match wins
DEFAULT_SCOPE_STATUSES: Sequence[tuple[str, RegStatus]] = (
    (UserScope.REGISTER.value, RegStatus.REGISTERED),
    (UserScope.VALIDATE.value, RegStatus.VALIDATED),
    (UserScope.DECLARE.value, RegStatus.DECLARED),
)

_REVIEWERS = frozenset({UserScope.VALIDATE.value, UserScope.REGISTER.value})

DEFAULT_ACTION_SCOPES: Mapping[WorkflowAction, frozenset[str]] = {
    WorkflowAction.SUBMIT: frozenset(
        {
            UserScope.DECLARE.value,
            UserScope.VALIDATE.value,
            UserScope.REGISTER.value,
            UserScope.NOTIFICATION_API.value,
        }
    ),
    WorkflowAction.VALIDATE: _REVIEWERS,
    WorkflowAction.UPDATE: _REVIEWERS,
    WorkflowAction.REGISTER: frozenset({UserScope.REGISTER.value}),
    WorkflowAction.CONFIRM_REGISTRATION: frozenset(
        {UserScope.REGISTER.value, UserScope.VALIDATOR_API.value}
    ),
    WorkflowAction.REJECT: _REVIEWERS,
    WorkflowAction.CERTIFY: frozenset({UserScope.CERTIFY.value, UserScope.REGISTER.value}),
    WorkflowAction.ISSUE: frozenset({UserScope.CERTIFY.value, UserScope.REGISTER.value}),
    WorkflowAction.REQUEST_CORRECTION: _REVIEWERS,
    WorkflowAction.REJECT_CORRECTION: frozenset({UserScope.REGISTER.value}),
    WorkflowAction.APPROVE_CORRECTION: frozenset({UserScope.REGISTER.value}),
    WorkflowAction.MARK_DUPLICATE: _REVIEWERS,
    WorkflowAction.MARK_NOT_DUPLICATE: _REVIEWERS,
    WorkflowAction.TOUCH: frozenset(
        {
            UserScope.DECLARE.value,
            UserScope.VALIDATE.value,
            UserScope.REGISTER.value,
            UserScope.CERTIFY.value,
            UserScope.RECORD_SEARCH.value,
        }
    ),
    WorkflowAction.READ: frozenset(
        {
            UserScope.DECLARE.value,
            UserScope.VALIDATE.value,
            UserScope.REGISTER.value,
            UserScope.CERTIFY.value,
            UserScope.RECORD_SEARCH.value,
            UserScope.SYSADMIN.value,
        }
    ),
}


def is_system_initiated(claims: TokenClaims) -> bool:
    """Check whether the token belongs to an integrated system client rather than a user."""
    return claims.is_system_client


class ScopeStatusPolicy:
    """Injected scope tables used by the mutator and the orchestrator.

    Args:
        scope_statuses: Ordered ``(scope, status)`` pairs; the first scope
            present on the token decides the default status.
        action_scopes: Scopes allowed to run each workflow action.
    """

    def __init__(
        self,
        scope_statuses: Sequence[tuple[str, RegStatus]] = DEFAULT_SCOPE_STATUSES,
        action_scopes: Mapping[WorkflowAction, frozenset[str]] = DEFAULT_ACTION_SCOPES,
    ) -> None:
        self.scope_statuses = tuple(scope_statuses)
        self.action_scopes = dict(action_scopes)

    def status_for(self, claims: TokenClaims) -> RegStatus:
        """Derive the status an actor writes when no explicit status is given.

        Raises:
            InsufficientScopeError: If the token has no scope, or none of the known ones
        """
        if not claims.scope:
            raise InsufficientScopeError("No scope found on token")
        for scope, status in self.scope_statuses:
            if scope in claims.scope:
                return status
        raise InsufficientScopeError("No valid scope found on token")

    def authorize(self, claims: TokenClaims, action: WorkflowAction) -> None:
        """Ensure the actor may run ``action``.

        Raises:
            ConfigurationError: If no scopes are configured for the action
            InsufficientScopeError: If the token carries none of the allowed scopes
        """
        allowed = self.action_scopes.get(action)
        if allowed is None:
            raise ConfigurationError(f"No scopes configured for action: {action.value}")
        if not claims.scope:
            raise InsufficientScopeError("No scope found on token")
        if allowed.isdisjoint(claims.scope):
            raise InsufficientScopeError(f"Insufficient scope for action: {action.value}")
