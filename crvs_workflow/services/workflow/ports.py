"""Collaborator interfaces the workflow depends on."""

from typing import Protocol

from crvs_workflow.models.auth import TokenClaims
from crvs_workflow.models.base import EventType, RegStatus
from crvs_workflow.models.fhir import Location


class ClaimsExtractor(Protocol):
    """Decodes a bearer token into actor claims."""

    def extract(self, token: str) -> TokenClaims: ...


class StatusReader(Protocol):
    """Reads the status currently persisted for a task."""

    async def fetch_existing_reg_status(self, task_id: str) -> RegStatus | None: ...


class LocationResolver(Protocol):
    """Resolves where a practitioner works."""

    async def get_practitioner_office(self, practitioner_id: str) -> Location: ...

    async def get_practitioner_primary_location(self, practitioner_id: str) -> Location: ...


class IdGenerator(Protocol):
    """Generates tracking ids and registration numbers."""

    def tracking_id(self, event_type: EventType) -> str: ...

    def registration_number(self, event_type: EventType, tracking_id: str) -> str: ...
