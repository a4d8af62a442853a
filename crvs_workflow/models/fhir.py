"""
FHIR datatypes and the supporting resources the workflow reads.

Only the elements the workflow touches are declared; everything else is
preserved through ``extra="allow"`` on :class:`FhirModel`.
"""

from pydantic import Field

from crvs_workflow.models.base import FhirModel


class Coding(FhirModel):
    """A code defined by a terminology system."""

    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConcept(FhirModel):
    """A concept carried as one coding per system, plus optional text."""

    coding: list[Coding] = Field(default_factory=list)
    text: str | None = None

    def coding_for(self, system: str) -> Coding | None:
        """Return the coding for ``system``, if present."""
        for coding in self.coding:
            if coding.system == system:
                return coding
        return None

    def get_code(self, system: str) -> str | None:
        """Return the code registered for ``system``."""
        coding = self.coding_for(system)
        return coding.code if coding else None

    def set_code(self, system: str, code: str) -> Coding:
        """Overwrite the coding for ``system`` or append a new one.

        Args:
            system: Coding system URL
            code: Code to store

        Returns:
            The coding holding ``code``
        """
        coding = self.coding_for(system)
        if coding is None:
            coding = Coding(system=system, code=code)
            self.coding.append(coding)
        else:
            coding.code = code
        return coding


class Reference(FhirModel):
    """A reference from one resource to another."""

    reference: str | None = None
    display: str | None = None


class Identifier(FhirModel):
    system: str | None = None
    value: str | None = None


class Extension(FhirModel):
    """A FHIR extension keyed by ``url``."""

    url: str
    value_reference: Reference | None = None
    value_string: str | None = None


class Annotation(FhirModel):
    """A note attached to a task."""

    text: str | None = None
    time: str | None = None
    author_string: str | None = None


class Meta(FhirModel):
    version_id: str | None = None
    last_updated: str | None = None


class Resource(FhirModel):
    """Any FHIR resource. Elements the workflow does not model are kept as extras."""

    resource_type: str
    id: str | None = None
    meta: Meta | None = None

    @property
    def reference(self) -> str:
        """Relative reference (``Type/id``) to this resource."""
        return f"{self.resource_type}/{self.id}"


class Practitioner(Resource):
    resource_type: str = "Practitioner"


class Location(Resource):
    """A jurisdiction area or a CRVS office."""

    resource_type: str = "Location"
    name: str | None = None
    type: CodeableConcept | None = None
    part_of: Reference | None = None

    def has_type(self, code: str) -> bool:
        """Check whether any coding of the location type equals ``code``."""
        if self.type is None:
            return False
        return any(coding.code == code for coding in self.type.coding)


class PractitionerRole(Resource):
    resource_type: str = "PractitionerRole"
    practitioner: Reference | None = None
    location: list[Reference] = Field(default_factory=list)
