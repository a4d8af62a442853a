"""Event emission to the notification/event pipeline."""

import enum

import httpx

from crvs_workflow.exceptions.domain import NotificationError
from crvs_workflow.models.base import EventType
from crvs_workflow.models.record import Record
from crvs_workflow.types import AuthHeaders
from crvs_workflow.utils.logger import logger


class WorkflowEvent(str, enum.Enum):
    """Actions announced on the event pipeline, per event type."""

    NEW_DECLARATION = "new-declaration"
    IN_PROGRESS_DECLARATION = "in-progress-declaration"
    MARK_VALIDATED = "mark-validated"
    UPDATE_DECLARATION = "update-declaration"
    WAITING_VALIDATION = "waiting-external-validation"
    MARK_REGISTERED = "mark-registered"
    MARK_VOIDED = "mark-voided"
    MARK_CERTIFIED = "mark-certified"
    MARK_ISSUED = "mark-issued"
    REQUEST_CORRECTION = "request-correction"
    REJECT_CORRECTION = "reject-correction"
    APPROVE_CORRECTION = "approve-correction"
    MARK_NOT_DUPLICATE = "mark-not-duplicate"


def event_route(event_type: EventType, event: WorkflowEvent) -> str:
    """Route of an event, e.g. ``birth/mark-voided``."""
    return f"{event_type.slug}/{event.value}"


class NotificationClient:
    """Posts workflow events to the event pipeline.

    Args:
        events_url: Base URL of the event pipeline.
        timeout: HTTP request timeout in seconds.
        transport: Optional transport, used by tests to stub the pipeline.
    """

    def __init__(
        self,
        events_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.events_url = events_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.events_url, timeout=timeout, transport=transport)

    async def trigger_event(
        self,
        event_type: EventType,
        event: WorkflowEvent,
        record: Record,
        headers: AuthHeaders,
    ) -> None:
        """POST a record to ``/events/<event type>/<event>``.

        Raises:
            NotificationError: If the pipeline cannot be reached or answers non-2xx.
        """
        route = event_route(event_type, event)
        try:
            response = await self._client.post(
                f"/events/{route}", json=record.to_fhir(), headers=headers
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Cannot deliver event {route}: {e}") from e

        if not response.is_success:
            raise NotificationError(
                f"Event pipeline rejected {route}",
                status_code=response.status_code,
                detail=response.text,
            )

    async def notify_quietly(
        self,
        event_type: EventType,
        event: WorkflowEvent,
        record: Record,
        headers: AuthHeaders,
    ) -> bool:
        """Trigger an event, logging delivery failures instead of raising.

        Returns:
            True if the event was delivered.
        """
        try:
            await self.trigger_event(event_type, event, record, headers)
        except NotificationError as e:
            logger.warning(f"Unable to send notification: {e}")
            return False
        return True

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
