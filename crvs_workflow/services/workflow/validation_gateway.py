"""
External validation gateway.

Registrations that need third-party sign-off are posted to the country
configuration service. The country system answers later through the
registration confirmation callback. When the call itself fails, the record
is rolled into REJECTED server-side and a void event is emitted.
"""

import httpx
from pydantic import BaseModel

from crvs_workflow.exceptions.domain import ExternalValidationError, MalformedRecordError
from crvs_workflow.models.base import RegStatus
from crvs_workflow.models.fhir import CodeableConcept
from crvs_workflow.models.record import Record, get_composition, get_event_type
from crvs_workflow.services.hearth.client import HearthClient
from crvs_workflow.services.notification.client import NotificationClient, WorkflowEvent
from crvs_workflow.services.practitioner.directory import PractitionerDirectory
from crvs_workflow.services.workflow.bundle_mutator import (
    setup_last_reg_location,
    setup_last_reg_user,
    setup_registration_workflow,
    touch_task,
)
from crvs_workflow.services.workflow.policy import ScopeStatusPolicy
from crvs_workflow.services.workflow.ports import ClaimsExtractor
from crvs_workflow.types import AuthHeaders
from crvs_workflow.utils.logger import logger

REGISTRATION_NUMBER_GENERATION_FAILED = "Automated registration number generation failed"


class ValidationOutcome(BaseModel):
    """Result of an external validation call.

    ``validation_error`` is True when the record has already been rejected
    server-side; the caller must not report the original action as a success.
    """

    record: Record
    validation_error: bool = False


class ExternalValidationGateway:
    """Calls ``POST <country_config_url>/event-registration``.

    Args:
        country_config_url: Base URL of the country configuration service.
        hearth: Document store, used by the compensating rejection.
        directory: Practitioner and location lookups.
        notifications: Event pipeline receiving the void event.
        claims_extractor: Decodes the forwarded token.
        policy: Scope policy used when re-stamping the task.
        timeout: HTTP request timeout in seconds.
        transport: Optional transport, used by tests to stub the endpoint.
    """

    def __init__(
        self,
        country_config_url: str,
        hearth: HearthClient,
        directory: PractitionerDirectory,
        notifications: NotificationClient,
        claims_extractor: ClaimsExtractor,
        policy: ScopeStatusPolicy,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.country_config_url = country_config_url.rstrip("/")
        self.hearth = hearth
        self.directory = directory
        self.notifications = notifications
        self.claims_extractor = claims_extractor
        self.policy = policy
        self._client = httpx.AsyncClient(
            base_url=self.country_config_url, timeout=timeout, transport=transport
        )

    async def _post_record(self, record: Record, auth_headers: AuthHeaders) -> None:
        try:
            response = await self._client.post(
                "/event-registration",
                json=record.to_fhir(),
                headers={"Content-Type": "application/json", **auth_headers},
            )
        except httpx.HTTPError as e:
            raise ExternalValidationError(f"System error: {e}") from e

        if not response.is_success:
            try:
                body = response.json()
                message = body.get("msg", "") if isinstance(body, dict) else str(body)
            except ValueError:
                message = response.text
            raise ExternalValidationError(
                f"System error: {response.reason_phrase} {response.status_code} {message}",
                status_code=response.status_code,
                detail=message,
            )

    async def invoke_registration_validation(
        self, record: Record, auth_headers: AuthHeaders, token: str
    ) -> ValidationOutcome:
        """Send a record for external validation.

        Args:
            record: Record awaiting registration
            auth_headers: Headers forwarded to the external endpoint and the event pipeline
            token: Bearer token of the acting user

        Returns:
            The record unchanged, flagged with ``validation_error`` when the
            compensating rejection ran.
        """
        try:
            await self._post_record(record, auth_headers)
        except ExternalValidationError as e:
            logger.error(f"External registration validation failed: {e}")
            await self._reject(record, auth_headers, token, str(e))
            return ValidationOutcome(record=record, validation_error=True)
        return ValidationOutcome(record=record)

    async def _reject(
        self, record: Record, auth_headers: AuthHeaders, token: str, error: str
    ) -> None:
        event_type = get_event_type(record)
        composition = get_composition(record)
        if not composition.id:
            raise MalformedRecordError("Cant get composition id in record")

        task = await self.hearth.fetch_task_by_composition_id(composition.id)
        claims = self.claims_extractor.extract(token)
        practitioner = await self.directory.get_logged_in_practitioner(claims, token)

        task.status_reason = CodeableConcept(text=f"{error} - {REGISTRATION_NUMBER_GENERATION_FAILED}")
        touch_task(task)
        await setup_registration_workflow(
            task,
            claims,
            RegStatus.REJECTED,
            status_reader=self.hearth,
            policy=self.policy,
            check_duplicate=False,
        )
        await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)

        await self.hearth.update_resource(task)
        logger.info(f"Task {task.id} rejected after failed external validation")

        await self.notifications.notify_quietly(
            event_type, WorkflowEvent.MARK_VOIDED, Record.for_task(task), auth_headers
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
