"""
Registration workflow: status registry, bundle mutator, orchestrator and
external validation gateway.

Example usage:
    from crvs_workflow.services.workflow import WorkflowService

    service = WorkflowService(hearth, directory, notifications, claims_extractor, id_generator)
    record = await service.validate(record, token)
"""

from .orchestrator import RegistrationOutcome, WorkflowService
from .policy import ScopeStatusPolicy, WorkflowAction, is_system_initiated
from .rejection import RejectionReason
from .status import (
    CORRECTABLE_STATUSES,
    DEFAULT_TRANSITIONS,
    REPEATABLE_STATUSES,
    check_correction_allowed,
    check_status_update,
)
from .tracking_id import DefaultIdGenerator
from .validation_gateway import ExternalValidationGateway, ValidationOutcome

__all__ = [
    "CORRECTABLE_STATUSES",
    "DEFAULT_TRANSITIONS",
    "REPEATABLE_STATUSES",
    "DefaultIdGenerator",
    "ExternalValidationGateway",
    "RegistrationOutcome",
    "RejectionReason",
    "ScopeStatusPolicy",
    "ValidationOutcome",
    "WorkflowAction",
    "WorkflowService",
    "check_correction_allowed",
    "check_status_update",
    "is_system_initiated",
]
