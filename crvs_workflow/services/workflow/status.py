"""
Status registry: allowed lifecycle transitions between registration statuses.

The default table is permissive. Callers may pass a stricter one to
``check_status_update``.
"""

from collections.abc import Mapping
from typing import TypeAlias

from crvs_workflow.exceptions.domain import DuplicateTransitionError, InvalidTransitionError
from crvs_workflow.models.base import RegStatus

TransitionTable: TypeAlias = Mapping[RegStatus | None, frozenset[RegStatus]]

# Statuses that may be written on top of themselves (one certificate per print)
REPEATABLE_STATUSES: frozenset[RegStatus] = frozenset({RegStatus.CERTIFIED})

# Statuses a correction can be requested from, and that it returns to REGISTERED on approval
CORRECTABLE_STATUSES: frozenset[RegStatus] = frozenset(
    {RegStatus.REGISTERED, RegStatus.CERTIFIED, RegStatus.ISSUED}
)

_PRE_REGISTRATION = frozenset(
    {
        RegStatus.DECLARED,
        RegStatus.VALIDATED,
        RegStatus.WAITING_VALIDATION,
        RegStatus.REGISTERED,
        RegStatus.REJECTED,
        RegStatus.DECLARATION_UPDATED,
    }
)

# None stands for a record that has never been persisted
DEFAULT_TRANSITIONS: TransitionTable = {
    None: frozenset(
        {
            RegStatus.IN_PROGRESS,
            RegStatus.DECLARED,
            RegStatus.VALIDATED,
            RegStatus.WAITING_VALIDATION,
            RegStatus.REGISTERED,
        }
    ),
    RegStatus.IN_PROGRESS: _PRE_REGISTRATION,
    RegStatus.DECLARED: _PRE_REGISTRATION,
    RegStatus.VALIDATED: _PRE_REGISTRATION,
    RegStatus.DECLARATION_UPDATED: _PRE_REGISTRATION,
    RegStatus.WAITING_VALIDATION: frozenset({RegStatus.REGISTERED, RegStatus.REJECTED}),
    RegStatus.REGISTERED: frozenset({RegStatus.CERTIFIED, RegStatus.ISSUED}),
    RegStatus.CERTIFIED: frozenset({RegStatus.CERTIFIED, RegStatus.ISSUED}),
    RegStatus.ISSUED: frozenset({RegStatus.CERTIFIED}),
    RegStatus.REJECTED: frozenset(
        {
            RegStatus.DECLARED,
            RegStatus.VALIDATED,
            RegStatus.WAITING_VALIDATION,
            RegStatus.REGISTERED,
            RegStatus.DECLARATION_UPDATED,
        }
    ),
}


def is_transition_allowed(
    previous: RegStatus | None, target: RegStatus, transitions: TransitionTable
) -> bool:
    return target in transitions.get(previous, frozenset())


def check_status_update(
    previous: RegStatus | None,
    target: RegStatus,
    transitions: TransitionTable | None = None,
) -> None:
    """Validate a status change against the persisted status.

    Args:
        previous: Status currently persisted for the record, None if new
        target: Status about to be written
        transitions: Optional transition table; when None only the duplicate
            rule applies

    Raises:
        DuplicateTransitionError: If ``target`` equals ``previous`` and is not repeatable
        InvalidTransitionError: If the table does not allow ``previous -> target``
    """
    if previous is not None and previous == target and target not in REPEATABLE_STATUSES:
        raise DuplicateTransitionError(target.value)
    if transitions is not None and not is_transition_allowed(previous, target, transitions):
        raise InvalidTransitionError(previous.value if previous else None, target.value)


def check_correction_allowed(previous: RegStatus | None) -> None:
    """Only registered records, printed or not, can be corrected.

    Raises:
        InvalidTransitionError: If ``previous`` is not a registered status
    """
    if previous not in CORRECTABLE_STATUSES:
        raise InvalidTransitionError(previous.value if previous else None, "a correction")
