"""Async HTTP client for the Hearth FHIR document store."""

from typing import Any

import httpx

from crvs_workflow.exceptions.domain import (
    ConcurrentModificationError,
    EntityNotFoundError,
    ExternalLookupError,
    PersistenceConflictError,
    PersistenceError,
)
from crvs_workflow.models.base import RegStatus
from crvs_workflow.models.fhir import Location, Practitioner, Resource
from crvs_workflow.models.record import Record, Task
from crvs_workflow.types import JSONDict
from crvs_workflow.utils.logger import logger


class HearthClient:
    """Reads and writes FHIR resources in Hearth.

    Lookups raise ``ExternalLookupError`` (``EntityNotFoundError`` on 404),
    writes raise ``PersistenceError`` or one of its subclasses.

    Args:
        base_url: Base URL of the FHIR API (e.g. ``http://localhost:3447/fhir``).
        timeout: HTTP request timeout in seconds.
        transport: Optional transport, used by tests to stub the server.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/fhir+json"},
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> JSONDict:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ExternalLookupError(f"Cannot reach Hearth at {self.base_url}: {e}") from e

        if response.status_code == 404:
            raise EntityNotFoundError(f"{path} not found in Hearth")
        if not response.is_success:
            logger.error(f"Hearth lookup failed: {response.status_code} - {response.text}")
            raise ExternalLookupError(
                f"Hearth lookup of {path} failed",
                status_code=response.status_code,
                detail=response.text,
            )
        data: JSONDict = response.json()
        return data

    async def get_resource(self, resource_type: str, resource_id: str) -> JSONDict:
        """Fetch a resource by type and id.

        Raises:
            EntityNotFoundError: If Hearth answers 404.
            ExternalLookupError: On transport errors or other non-2xx answers.
        """
        return await self._get(f"/{resource_type}/{resource_id}")

    async def get_practitioner(self, practitioner_id: str) -> Practitioner:
        return Practitioner.model_validate(await self.get_resource("Practitioner", practitioner_id))

    async def get_location(self, location_id: str) -> Location:
        return Location.model_validate(await self.get_resource("Location", location_id))

    async def get_task(self, task_id: str) -> Task:
        return Task.model_validate(await self.get_resource("Task", task_id))

    async def search(self, resource_type: str, **params: str) -> list[JSONDict]:
        """Run a FHIR search and return the matching resources."""
        bundle = await self._get(f"/{resource_type}", params=params)
        return [entry["resource"] for entry in bundle.get("entry") or [] if "resource" in entry]

    async def fetch_task_by_composition_id(self, composition_id: str) -> Task:
        """Fetch the live task focused on a composition.

        Raises:
            EntityNotFoundError: If no task points at the composition.
        """
        resources = await self.search("Task", focus=f"Composition/{composition_id}")
        if not resources:
            raise EntityNotFoundError(f"Task for Composition/{composition_id} not found")
        return Task.model_validate(resources[0])

    async def fetch_existing_reg_status(self, task_id: str) -> RegStatus | None:
        """Status currently persisted for a task, or None if the task is not stored."""
        try:
            task = await self.get_task(task_id)
        except EntityNotFoundError:
            return None
        return task.reg_status

    async def update_resource(self, resource: Resource) -> JSONDict:
        """Write a resource by id.

        When the resource carries ``meta.versionId`` the write is conditional
        on that version (``If-Match``).

        Raises:
            ConcurrentModificationError: If the stored version moved on (409/412).
            PersistenceError: On transport errors or other non-2xx answers.
        """
        if not resource.id:
            raise PersistenceError(f"Cannot update {resource.resource_type} without an id")

        headers = {}
        if resource.meta is not None and resource.meta.version_id:
            headers["If-Match"] = f'W/"{resource.meta.version_id}"'

        path = f"/{resource.resource_type}/{resource.id}"
        try:
            response = await self._client.put(path, json=resource.to_fhir(), headers=headers)
        except httpx.HTTPError as e:
            raise PersistenceError(f"Cannot reach Hearth at {self.base_url}: {e}") from e

        if response.status_code in (409, 412):
            raise ConcurrentModificationError(f"{path} was modified concurrently")
        if not response.is_success:
            logger.error(f"Hearth update failed: {response.status_code} - {response.text}")
            raise PersistenceError(
                f"Updating {path} failed", status_code=response.status_code, detail=response.text
            )
        logger.debug(f"Updated {path}")
        return response.json() if response.content else {}

    async def post_bundle(self, record: Record) -> JSONDict:
        """Submit a transaction bundle.

        Raises:
            PersistenceConflictError: If Hearth answers 409 (tracking id taken).
            PersistenceError: On transport errors or other non-2xx answers.
        """
        try:
            response = await self._client.post("/", json=record.to_fhir())
        except httpx.HTTPError as e:
            raise PersistenceError(f"Cannot reach Hearth at {self.base_url}: {e}") from e

        if response.status_code == 409:
            raise PersistenceConflictError(
                "Hearth rejected the bundle with a conflict", status_code=409, detail=response.text
            )
        if not response.is_success:
            logger.error(f"Hearth bundle submission failed: {response.status_code} - {response.text}")
            raise PersistenceError(
                "Submitting bundle to Hearth failed",
                status_code=response.status_code,
                detail=response.text,
            )
        data: JSONDict = response.json()
        return data

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "HearthClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
