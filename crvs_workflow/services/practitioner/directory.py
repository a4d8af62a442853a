"""Resolution of the acting practitioner and of where they work."""

import httpx
from pydantic import BaseModel

from crvs_workflow.exceptions.domain import EntityNotFoundError, ExternalLookupError
from crvs_workflow.models.auth import TokenClaims
from crvs_workflow.models.fhir import Location, Practitioner, PractitionerRole
from crvs_workflow.services.hearth.client import HearthClient
from crvs_workflow.types import JSONDict
from crvs_workflow.utils.logger import logger

CRVS_OFFICE_TYPE = "CRVS_OFFICE"


class Actor(BaseModel):
    """Who is behind a token: their practitioner, plus the getSystem details for system clients."""

    practitioner: Practitioner
    system: JSONDict | None = None


def _reference_id(reference: str | None) -> str | None:
    if not reference:
        return None
    return reference.rstrip("/").split("/")[-1]


class PractitionerDirectory:
    """Looks up practitioners in user-management and their locations in Hearth.

    Args:
        user_mgnt_url: Base URL of the user-management service.
        hearth: Client for the FHIR store holding Practitioner/Location resources.
        timeout: HTTP request timeout in seconds.
        transport: Optional transport, used by tests to stub user-management.
    """

    def __init__(
        self,
        user_mgnt_url: str,
        hearth: HearthClient,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_mgnt_url = user_mgnt_url.rstrip("/")
        self.hearth = hearth
        self._client = httpx.AsyncClient(
            base_url=self.user_mgnt_url, timeout=timeout, transport=transport
        )

    async def _call_user_mgnt(self, method: str, body: JSONDict, token: str) -> JSONDict:
        try:
            response = await self._client.post(
                f"/{method}", json=body, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            raise ExternalLookupError(
                f"Cannot reach user-management at {self.user_mgnt_url}: {e}"
            ) from e

        if not response.is_success:
            logger.error(f"user-management {method} failed: {response.status_code} - {response.text}")
            raise ExternalLookupError(
                f"user-management {method} failed",
                status_code=response.status_code,
                detail=response.text,
            )
        data: JSONDict = response.json()
        return data

    async def get_system(self, system_id: str, token: str) -> JSONDict:
        """Fetch an integrated system client (name, username, type, practitionerId)."""
        return await self._call_user_mgnt("getSystem", {"systemId": system_id}, token)

    async def resolve_actor(self, claims: TokenClaims, token: str) -> Actor:
        """Resolve the practitioner behind a token, and the system client details if any.

        Args:
            claims: Claims decoded from ``token``
            token: Raw bearer token, forwarded to user-management

        Returns:
            The acting practitioner; system clients also carry their getSystem answer

        Raises:
            ExternalLookupError: If the user, its practitioner id or the resource cannot be found
        """
        system: JSONDict | None = None
        if claims.is_system_client:
            details = system = await self.get_system(claims.sub, token)
        else:
            details = await self._call_user_mgnt("getUser", {"userId": claims.sub}, token)

        practitioner_id = details.get("practitionerId")
        if not practitioner_id:
            raise ExternalLookupError(f"No practitioner found for {claims.sub}")

        try:
            practitioner = await self.hearth.get_practitioner(practitioner_id)
        except EntityNotFoundError as e:
            raise ExternalLookupError(str(e)) from e
        return Actor(practitioner=practitioner, system=system)

    async def get_logged_in_practitioner(self, claims: TokenClaims, token: str) -> Practitioner:
        """Resolve only the Practitioner resource behind a token."""
        actor = await self.resolve_actor(claims, token)
        return actor.practitioner

    async def _get_location(self, reference: str | None) -> Location:
        location_id = _reference_id(reference)
        if location_id is None:
            raise ExternalLookupError("Location reference is empty")
        try:
            return await self.hearth.get_location(location_id)
        except EntityNotFoundError as e:
            raise ExternalLookupError(str(e)) from e

    async def get_practitioner_office(self, practitioner_id: str) -> Location:
        """Return the CRVS office listed on the practitioner's role.

        Raises:
            ExternalLookupError: If the practitioner has no role or no office location
        """
        roles = await self.hearth.search("PractitionerRole", practitioner=practitioner_id)
        if not roles:
            raise ExternalLookupError(f"PractitionerRole not found for Practitioner/{practitioner_id}")

        role = PractitionerRole.model_validate(roles[0])
        for reference in role.location:
            location = await self._get_location(reference.reference)
            if location.has_type(CRVS_OFFICE_TYPE):
                return location
        raise ExternalLookupError(f"No CRVS office found for Practitioner/{practitioner_id}")

    async def get_practitioner_primary_location(self, practitioner_id: str) -> Location:
        """Return the administrative area the practitioner's office belongs to."""
        office = await self.get_practitioner_office(practitioner_id)
        if office.part_of is None:
            raise ExternalLookupError(f"Office Location/{office.id} has no parent location")
        return await self._get_location(office.part_of.reference)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
