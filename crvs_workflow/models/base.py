"""
Base models for the workflow service.

This module provides the pydantic base class shared by every FHIR resource
model and the closed vocabularies used throughout the workflow.
"""

import enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from crvs_workflow.types import JSONDict


class FhirModel(BaseModel):
    """Base model for FHIR resources.

    Python attributes are snake_case, wire names are FHIR camelCase. Unknown
    FHIR elements are kept as extra fields so that a record survives a
    parse/serialize cycle untouched.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_fhir(self) -> JSONDict:
        """Serialize the model back to FHIR JSON."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class RegStatus(str, enum.Enum):
    """Lifecycle statuses of a registration record."""

    IN_PROGRESS = "IN_PROGRESS"
    DECLARED = "DECLARED"
    VALIDATED = "VALIDATED"
    WAITING_VALIDATION = "WAITING_VALIDATION"
    REGISTERED = "REGISTERED"
    CERTIFIED = "CERTIFIED"
    REJECTED = "REJECTED"
    DECLARATION_UPDATED = "DECLARATION_UPDATED"
    ISSUED = "ISSUED"


class EventType(str, enum.Enum):
    """Vital events a record can describe."""

    BIRTH = "BIRTH"
    DEATH = "DEATH"
    MARRIAGE = "MARRIAGE"

    @property
    def slug(self) -> str:
        """Lower-case name used in identifier systems and event routes."""
        return self.value.lower()
