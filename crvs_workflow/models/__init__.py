"""Record document model and related FHIR resources."""

from crvs_workflow.models.auth import TokenClaims, UserScope
from crvs_workflow.models.base import EventType, FhirModel, RegStatus
from crvs_workflow.models.fhir import (
    Annotation,
    CodeableConcept,
    Coding,
    Extension,
    Identifier,
    Location,
    Meta,
    Practitioner,
    PractitionerRole,
    Reference,
    Resource,
)
from crvs_workflow.models.record import (
    BundleEntry,
    Composition,
    Record,
    Task,
    find_task,
    get_composition,
    get_event_type,
    get_task,
    is_event_notification,
    is_in_progress_declaration,
    select_or_create_task,
)

__all__ = [
    "Annotation",
    "BundleEntry",
    "CodeableConcept",
    "Coding",
    "Composition",
    "EventType",
    "Extension",
    "FhirModel",
    "Identifier",
    "Location",
    "Meta",
    "Practitioner",
    "PractitionerRole",
    "Record",
    "Reference",
    "RegStatus",
    "Resource",
    "Task",
    "TokenClaims",
    "UserScope",
    "find_task",
    "get_composition",
    "get_event_type",
    "get_task",
    "is_event_notification",
    "is_in_progress_declaration",
    "select_or_create_task",
]
