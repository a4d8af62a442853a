"""
Record document model.

A record is a FHIR document bundle whose first entry is the Composition and
which carries exactly one live Task holding the workflow state. Task
identifiers and extensions are held as ordered mappings keyed by their
well-known system/url and are flattened back to FHIR arrays on serialization.
"""

from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import (
    Discriminator,
    Field,
    FieldSerializationInfo,
    Tag,
    field_serializer,
    model_validator,
)

from crvs_workflow.exceptions.domain import InvalidBundleError, MalformedRecordError
from crvs_workflow.models.base import EventType, FhirModel, RegStatus
from crvs_workflow.models.fhir import (
    Annotation,
    CodeableConcept,
    Extension,
    Identifier,
    Reference,
    Resource,
)
from crvs_workflow.models.systems import (
    COMPOSITION_EVENT_CODES,
    DOC_TYPES_SYSTEM,
    EVENT_TYPE_SYSTEM,
    PAPER_FORM_ID_SYSTEM,
    REG_STATUS_SYSTEM,
    registration_number_system,
    tracking_id_system,
)
from crvs_workflow.types import JSONDict


class Task(Resource):
    """The state-bearing resource of a record."""

    resource_type: Literal["Task"] = "Task"
    status: str | None = None
    intent: str | None = None
    code: CodeableConcept | None = None
    focus: Reference | None = None
    business_status: CodeableConcept | None = None
    status_reason: CodeableConcept | None = None
    last_modified: str | None = None
    identifiers: dict[str, list[Identifier]] = Field(default_factory=dict, alias="identifier")
    extensions: dict[str, Extension] = Field(default_factory=dict, alias="extension")
    notes: list[Annotation] = Field(default_factory=list, alias="note")

    @model_validator(mode="before")
    @classmethod
    def index_fhir_arrays(cls, data: Any) -> Any:
        """Turn the FHIR ``identifier``/``extension`` arrays into keyed mappings.

        Identifiers sharing a system keep every entry in order, with their
        other elements intact. Extensions repeated under the same url
        collapse to the last occurrence.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        identifiers = data.get("identifier")
        if isinstance(identifiers, list):
            by_system: dict[str, list[Any]] = {}
            for item in identifiers:
                system = item.system if isinstance(item, Identifier) else item.get("system")
                by_system.setdefault(system or "", []).append(item)
            data["identifier"] = by_system

        extensions = data.get("extension")
        if isinstance(extensions, list):
            by_url: dict[str, Any] = {}
            for item in extensions:
                url = item.url if isinstance(item, Extension) else item.get("url")
                by_url[url] = item
            data["extension"] = by_url

        return data

    @field_serializer("identifiers")
    def flatten_identifiers(
        self, identifiers: dict[str, list[Identifier]], info: FieldSerializationInfo
    ) -> list[JSONDict]:
        return [
            identifier.model_dump(
                by_alias=info.by_alias, exclude_none=info.exclude_none, mode=info.mode
            )
            for entries in identifiers.values()
            for identifier in entries
        ]

    @field_serializer("extensions")
    def flatten_extensions(
        self, extensions: dict[str, Extension], info: FieldSerializationInfo
    ) -> list[JSONDict]:
        return [
            extension.model_dump(
                by_alias=info.by_alias, exclude_none=info.exclude_none, mode=info.mode
            )
            for extension in extensions.values()
        ]

    # Workflow status

    @property
    def reg_status(self) -> RegStatus | None:
        """Current registration status, or None when unset or unknown."""
        if self.business_status is None:
            return None
        code = self.business_status.get_code(REG_STATUS_SYSTEM)
        try:
            return RegStatus(code) if code else None
        except ValueError:
            return None

    def set_reg_status(self, status: RegStatus) -> None:
        if self.business_status is None:
            self.business_status = CodeableConcept()
        self.business_status.set_code(REG_STATUS_SYSTEM, status.value)

    @property
    def event_type(self) -> EventType | None:
        if self.code is None:
            return None
        code = self.code.get_code(EVENT_TYPE_SYSTEM)
        if code is None and self.code.coding:
            code = self.code.coding[0].code
        try:
            return EventType(code) if code else None
        except ValueError:
            return None

    # Identifiers

    def identifier_values(self, system: str) -> list[str]:
        return [entry.value for entry in self.identifiers.get(system, []) if entry.value]

    def identifier_value(self, system: str) -> str | None:
        """Latest value stored under ``system``."""
        values = self.identifier_values(system)
        return values[-1] if values else None

    def set_identifier(self, system: str, value: str) -> None:
        """Overwrite the identifier slot for ``system``."""
        self.identifiers[system] = [Identifier(system=system, value=value)]

    def push_identifier(self, system: str, value: str) -> None:
        """Append a value under ``system``, keeping earlier ones."""
        self.identifiers.setdefault(system, []).append(Identifier(system=system, value=value))

    def remove_identifier(self, system: str) -> None:
        self.identifiers.pop(system, None)

    @property
    def tracking_id(self) -> str | None:
        event_type = self.event_type
        if event_type is not None:
            return self.identifier_value(tracking_id_system(event_type))
        for candidate in EventType:
            value = self.identifier_value(tracking_id_system(candidate))
            if value:
                return value
        return None

    @property
    def registration_numbers(self) -> list[str]:
        event_type = self.event_type
        if event_type is None:
            return []
        return self.identifier_values(registration_number_system(event_type))

    @property
    def paper_form_id(self) -> str | None:
        return self.identifier_value(PAPER_FORM_ID_SYSTEM)

    # Extensions

    def get_extension(self, url: str) -> Extension | None:
        return self.extensions.get(url)

    def set_extension(self, extension: Extension) -> Extension:
        """Overwrite the extension registered under ``extension.url`` in place."""
        self.extensions[extension.url] = extension
        return extension

    def remove_extension(self, url: str) -> None:
        self.extensions.pop(url, None)


class Composition(Resource):
    """The document anchor of a record; holds the tracking id."""

    resource_type: Literal["Composition"] = "Composition"
    identifier: Identifier | None = None
    type: CodeableConcept | None = None
    title: str | None = None

    @property
    def doc_type_code(self) -> str | None:
        if self.type is None:
            return None
        return self.type.get_code(DOC_TYPES_SYSTEM)

    @property
    def event_type(self) -> EventType | None:
        if self.type is None:
            return None
        for coding in self.type.coding:
            if coding.code in COMPOSITION_EVENT_CODES:
                return COMPOSITION_EVENT_CODES[coding.code]
        return None


def _entry_resource_kind(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("resourceType", value.get("resource_type"))
    else:
        kind = getattr(value, "resource_type", None)
    return kind if kind in ("Composition", "Task") else "Resource"


EntryResource = Annotated[
    Annotated[Composition, Tag("Composition")]
    | Annotated[Task, Tag("Task")]
    | Annotated[Resource, Tag("Resource")],
    Discriminator(_entry_resource_kind),
]


class BundleEntry(FhirModel):
    full_url: str | None = None
    resource: EntryResource | None = None


class Record(FhirModel):
    """A registration record exchanged as a FHIR bundle."""

    resource_type: str = "Bundle"
    type: str | None = None
    entry: list[BundleEntry] = Field(default_factory=list)

    @classmethod
    def for_task(cls, task: Task) -> "Record":
        """Wrap a single task into a bundle, as sent to the event pipeline."""
        return cls(type="document", entry=[BundleEntry(resource=task)])


def find_task(record: Record) -> Task | None:
    for entry in record.entry:
        if isinstance(entry.resource, Task):
            return entry.resource
    return None


def get_task(record: Record) -> Task:
    """Locate the task of a record.

    Raises:
        MalformedRecordError: If the record holds no Task resource
    """
    task = find_task(record)
    if task is None:
        raise MalformedRecordError("Task resource not found in record")
    return task


def get_composition(record: Record) -> Composition:
    """Return the composition, which must be the first entry.

    Raises:
        MalformedRecordError: If the first entry is not a Composition
    """
    if not record.entry or not isinstance(record.entry[0].resource, Composition):
        raise MalformedRecordError("Composition resource not found as first entry of record")
    return record.entry[0].resource


def get_event_type(record: Record) -> EventType:
    """Derive the event type of a record.

    The composition type coding is read first; a record whose first entry is
    already a Task (partial updates) falls back to the task code coding.

    Raises:
        InvalidBundleError: If no event type can be derived
    """
    if not record.entry or record.entry[0].resource is None:
        raise InvalidBundleError("Invalid FHIR bundle found")

    first = record.entry[0].resource
    event_type = None
    if isinstance(first, Composition):
        event_type = first.event_type
    if event_type is None:
        task = find_task(record)
        event_type = task.event_type if task else None
    if event_type is None:
        raise InvalidBundleError("Unable to derive event type from record")
    return event_type


def select_or_create_task(record: Record) -> Task:
    """Return the record's task, appending a fresh one when it has none."""
    task = find_task(record)
    if task is not None:
        return task

    composition_entry = record.entry[0] if record.entry else None
    focus = None
    if composition_entry is not None and composition_entry.full_url:
        focus = Reference(reference=composition_entry.full_url)
    task = Task(status="requested", intent="proposal", focus=focus)
    record.entry.append(BundleEntry(full_url=f"urn:uuid:{uuid4()}", resource=task))
    return task


def is_in_progress_declaration(record: Record) -> bool:
    task = find_task(record)
    return task is not None and task.status == "draft"


def is_event_notification(record: Record) -> bool:
    """Check whether the record was sent as an event notification (health system)."""
    for entry in record.entry:
        if isinstance(entry.resource, Composition):
            code = entry.resource.doc_type_code
            return bool(code and code.endswith("-notification"))
    return False
