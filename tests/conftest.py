"""Shared fixtures for workflow tests: record payloads and in-memory collaborators."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest

from crvs_workflow.exceptions.domain import EntityNotFoundError, PersistenceConflictError
from crvs_workflow.models import (
    CodeableConcept,
    Coding,
    EventType,
    Location,
    Practitioner,
    Record,
    Reference,
    RegStatus,
    Resource,
    Task,
    TokenClaims,
)
from crvs_workflow.models.systems import (
    DOC_TYPES_SYSTEM,
    EVENT_TYPE_SYSTEM,
    REG_STATUS_SYSTEM,
    tracking_id_system,
)
from crvs_workflow.services.practitioner.directory import Actor
from crvs_workflow.services.workflow.orchestrator import WorkflowService
from crvs_workflow.services.workflow.policy import ScopeStatusPolicy


def make_record_payload(
    *,
    status: str | None = "DECLARED",
    task_id: str | None = "task-1",
    composition_id: str | None = "comp-1",
    task_status: str = "requested",
    doc_type: str = "birth-declaration",
    event: str = "BIRTH",
    tracking_id: str | None = "B123456",
    extensions: list[dict[str, Any]] | None = None,
    notes: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a FHIR bundle for a birth (or other) record."""
    task: dict[str, Any] = {
        "resourceType": "Task",
        "status": task_status,
        "code": {"coding": [{"system": EVENT_TYPE_SYSTEM, "code": event}]},
        "focus": {"reference": "urn:uuid:composition"},
        "identifier": [],
        "extension": extensions or [],
        "note": notes or [],
    }
    if task_id:
        task["id"] = task_id
    if status:
        task["businessStatus"] = {"coding": [{"system": REG_STATUS_SYSTEM, "code": status}]}
    if tracking_id:
        task["identifier"].append(
            {"system": tracking_id_system(EventType(event)), "value": tracking_id}
        )

    composition: dict[str, Any] = {
        "resourceType": "Composition",
        "identifier": {"system": "urn:ietf:rfc:3986", "value": tracking_id},
        "type": {"coding": [{"system": DOC_TYPES_SYSTEM, "code": doc_type}]},
        "title": "Birth Declaration",
        "section": [{"code": {"coding": [{"code": "child-details"}]}}],
    }
    if composition_id:
        composition["id"] = composition_id

    return {
        "resourceType": "Bundle",
        "type": "document",
        "entry": [
            {"fullUrl": "urn:uuid:composition", "resource": composition},
            {"fullUrl": "urn:uuid:task", "resource": task},
            {
                "fullUrl": "urn:uuid:child",
                "resource": {"resourceType": "Patient", "gender": "female"},
            },
        ],
    }


class FakeStatusReader:
    """Persisted statuses keyed by task id."""

    def __init__(self, statuses: dict[str, RegStatus] | None = None) -> None:
        self.statuses = dict(statuses or {})
        self.calls: list[str] = []

    async def fetch_existing_reg_status(self, task_id: str) -> RegStatus | None:
        self.calls.append(task_id)
        return self.statuses.get(task_id)


class FakeLocationResolver:
    def __init__(self) -> None:
        self.district = Location(id="district-1", name="Ibombo")
        self.office = Location(
            id="office-1",
            name="Ibombo District Office",
            type=CodeableConcept(coding=[Coding(code="CRVS_OFFICE")]),
            part_of=Reference(reference="Location/district-1"),
        )

    async def get_practitioner_office(self, practitioner_id: str) -> Location:
        return self.office

    async def get_practitioner_primary_location(self, practitioner_id: str) -> Location:
        return self.district


class SequenceIdGenerator:
    """Deterministic ids: B000001, B000002, ..."""

    def __init__(self) -> None:
        self.count = 0

    def tracking_id(self, event_type: EventType) -> str:
        self.count += 1
        return f"{event_type.value[0]}{self.count:06d}"

    def registration_number(self, event_type: EventType, tracking_id: str) -> str:
        return f"2026{tracking_id}"


class StaticClaimsExtractor:
    def __init__(self, *scopes: str, sub: str = "user-1") -> None:
        self.claims = TokenClaims(sub=sub, scope=list(scopes))

    def extract(self, token: str) -> TokenClaims:
        return self.claims


class FakeHearth:
    """In-memory stand-in for HearthClient."""

    def __init__(self) -> None:
        self.statuses: dict[str, RegStatus] = {}
        self.tasks_by_composition: dict[str, Task] = {}
        self.updated: list[Task] = []
        self.posted: list[dict[str, Any]] = []
        self.conflicts: int = 0
        self.composition_location = "/fhir/Composition/comp-99/_history/1"

    async def fetch_existing_reg_status(self, task_id: str) -> RegStatus | None:
        return self.statuses.get(task_id)

    async def fetch_task_by_composition_id(self, composition_id: str) -> Task:
        if composition_id not in self.tasks_by_composition:
            raise EntityNotFoundError(f"Task for Composition/{composition_id} not found")
        return Task.model_validate(self.tasks_by_composition[composition_id].to_fhir())

    async def update_resource(self, resource: Resource) -> dict[str, Any]:
        self.updated.append(resource.model_copy(deep=True))
        return {}

    async def post_bundle(self, record: Record) -> dict[str, Any]:
        self.posted.append(record.to_fhir())
        if self.conflicts:
            self.conflicts -= 1
            raise PersistenceConflictError("conflict", status_code=409)
        return {"entry": [{"response": {"location": self.composition_location}}]}

    async def close(self) -> None:
        pass


@pytest.fixture
def record_payload() -> Callable[..., dict[str, Any]]:
    return make_record_payload


@pytest.fixture
def birth_record() -> Record:
    return Record.model_validate(make_record_payload())


@pytest.fixture
def practitioner() -> Practitioner:
    return Practitioner(id="pr-1")


@pytest.fixture
def status_reader() -> FakeStatusReader:
    return FakeStatusReader()


@pytest.fixture
def location_resolver() -> FakeLocationResolver:
    return FakeLocationResolver()


@pytest.fixture
def id_generator() -> SequenceIdGenerator:
    return SequenceIdGenerator()


@pytest.fixture
def policy() -> ScopeStatusPolicy:
    return ScopeStatusPolicy()


@pytest.fixture
def register_claims() -> TokenClaims:
    return TokenClaims(sub="user-1", scope=["register", "performance"])


@pytest.fixture
def hearth() -> FakeHearth:
    return FakeHearth()


@pytest.fixture
def directory(location_resolver: FakeLocationResolver) -> AsyncMock:
    directory = AsyncMock()
    directory.get_logged_in_practitioner.return_value = Practitioner(id="pr-1")
    directory.get_practitioner_office.side_effect = location_resolver.get_practitioner_office
    directory.get_practitioner_primary_location.side_effect = (
        location_resolver.get_practitioner_primary_location
    )
    directory.get_system.return_value = {
        "name": "Health system",
        "username": "health-sys",
        "type": "HEALTH",
        "practitionerId": "pr-sys",
    }

    async def resolve_actor(claims: TokenClaims, token: str) -> Actor:
        system = dict(directory.get_system.return_value) if claims.is_system_client else None
        return Actor(practitioner=directory.get_logged_in_practitioner.return_value, system=system)

    directory.resolve_actor.side_effect = resolve_actor
    return directory


@pytest.fixture
def notifications() -> AsyncMock:
    notifications = AsyncMock()
    notifications.notify_quietly.return_value = True
    return notifications


@pytest.fixture
def service_factory(
    hearth: FakeHearth,
    directory: AsyncMock,
    notifications: AsyncMock,
    id_generator: SequenceIdGenerator,
) -> Callable[..., WorkflowService]:
    """Build a WorkflowService acting with the given token scopes."""

    def factory(*scopes: str, **kwargs: Any) -> WorkflowService:
        kwargs.setdefault("notifications", notifications)
        return WorkflowService(
            hearth=hearth,
            directory=directory,
            claims_extractor=StaticClaimsExtractor(*scopes),
            id_generator=id_generator,
            **kwargs,
        )

    return factory


@pytest.fixture
def claims_extractor() -> StaticClaimsExtractor:
    return StaticClaimsExtractor("register")
