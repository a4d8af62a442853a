"""
Workflow orchestrator.

One coroutine per workflow action. Each follows the same sequence: decode
the token and authorize the action, resolve the acting practitioner, run the
bundle mutator, persist, then emit the event. Event delivery is best-effort.
"""

from pydantic import BaseModel

from crvs_workflow.exceptions.domain import (
    InvalidBundleError,
    PersistenceConflictError,
)
from crvs_workflow.models.auth import TokenClaims, UserScope
from crvs_workflow.models.base import EventType, RegStatus
from crvs_workflow.models.fhir import Practitioner
from crvs_workflow.models.record import (
    Record,
    Task,
    get_composition,
    get_event_type,
    get_task,
    is_event_notification,
    is_in_progress_declaration,
    select_or_create_task,
)
from crvs_workflow.services.hearth.client import HearthClient
from crvs_workflow.services.notification.client import NotificationClient, WorkflowEvent
from crvs_workflow.services.practitioner.directory import Actor, PractitionerDirectory
from crvs_workflow.services.workflow.bundle_mutator import (
    add_rejection_note,
    clear_correction_request,
    clear_duplicate_flag,
    flag_duplicate,
    make_task_anonymous,
    mark_event_as_registered,
    restore_status_after_correction,
    set_tracking_id,
    setup_author_on_notes,
    setup_last_reg_location,
    setup_last_reg_user,
    setup_registration_type,
    setup_registration_workflow,
    setup_system_identifier,
    snapshot_status_for_correction,
    touch_task,
)
from crvs_workflow.services.workflow.policy import (
    ScopeStatusPolicy,
    WorkflowAction,
    is_system_initiated,
)
from crvs_workflow.services.workflow.ports import ClaimsExtractor, IdGenerator
from crvs_workflow.services.workflow.rejection import RejectionReason
from crvs_workflow.services.workflow.status import (
    DEFAULT_TRANSITIONS,
    TransitionTable,
    check_correction_allowed,
)
from crvs_workflow.services.workflow.validation_gateway import ExternalValidationGateway
from crvs_workflow.types import AuthHeaders, JSONDict
from crvs_workflow.utils.logger import logger

DEFAULT_SUBMIT_ATTEMPTS = 5


class RegistrationOutcome(BaseModel):
    """Result of a registration request.

    ``status`` is REGISTERED when the number was issued inline,
    WAITING_VALIDATION while an external system decides, and REJECTED when
    the external validation call failed and the record was rolled back.
    """

    record: Record
    status: RegStatus
    registration_number: str | None = None
    validation_error: bool = False


def auth_headers(token: str) -> AuthHeaders:
    return {"Authorization": f"Bearer {token}"}


def resource_id_from_location(location: str, resource_type: str) -> str | None:
    """Extract the id from a Hearth location such as ``/fhir/Composition/<id>/_history/<v>``."""
    parts = [part for part in location.split("/") if part]
    if resource_type in parts:
        index = parts.index(resource_type)
        if index + 1 < len(parts):
            return parts[index + 1]
    return None


class WorkflowService:
    """Entry points of the registration workflow.

    Args:
        hearth: Document store client; also the persisted-status reader.
        directory: Practitioner and location lookups.
        notifications: Event pipeline client.
        claims_extractor: Decodes bearer tokens.
        id_generator: Tracking id and registration number generator.
        policy: Scope policy; defaults to the standard scope tables.
        gateway: External validation gateway; registrations are completed
            inline when None.
        transitions: Status transition table enforced on every stamp; None
            keeps only the duplicate guard.
        max_submit_attempts: Bundle submissions tried on tracking id collisions.
    """

    def __init__(
        self,
        hearth: HearthClient,
        directory: PractitionerDirectory,
        notifications: NotificationClient,
        claims_extractor: ClaimsExtractor,
        id_generator: IdGenerator,
        policy: ScopeStatusPolicy | None = None,
        gateway: ExternalValidationGateway | None = None,
        transitions: TransitionTable | None = DEFAULT_TRANSITIONS,
        max_submit_attempts: int = DEFAULT_SUBMIT_ATTEMPTS,
    ) -> None:
        self.hearth = hearth
        self.directory = directory
        self.notifications = notifications
        self.claims_extractor = claims_extractor
        self.id_generator = id_generator
        self.policy = policy or ScopeStatusPolicy()
        self.gateway = gateway
        self.transitions = transitions
        self.max_submit_attempts = max_submit_attempts

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _resolve_actor(
        self, token: str, action: WorkflowAction
    ) -> tuple[TokenClaims, Actor]:
        claims = self.claims_extractor.extract(token)
        self.policy.authorize(claims, action)
        actor = await self.directory.resolve_actor(claims, token)
        logger.debug(f"{action.value} requested by {claims.sub}")
        return claims, actor

    async def _begin(
        self, token: str, action: WorkflowAction
    ) -> tuple[TokenClaims, Practitioner]:
        claims, actor = await self._resolve_actor(token, action)
        return claims, actor.practitioner

    async def _stamp(
        self,
        task: Task,
        claims: TokenClaims,
        practitioner: Practitioner,
        status: RegStatus | None,
        *,
        check_duplicate: bool = True,
    ) -> Task:
        await setup_registration_workflow(
            task,
            claims,
            status,
            status_reader=self.hearth,
            policy=self.policy,
            transitions=self.transitions,
            check_duplicate=check_duplicate,
        )
        await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)
        return task

    async def _notify(
        self, event_type: EventType, event: WorkflowEvent, record: Record, token: str
    ) -> None:
        await self.notifications.notify_quietly(event_type, event, record, auth_headers(token))

    async def _submit_with_retry(self, record: Record) -> JSONDict:
        for attempt in range(1, self.max_submit_attempts + 1):
            try:
                return await self.hearth.post_bundle(record)
            except PersistenceConflictError:
                if attempt == self.max_submit_attempts:
                    logger.error(f"Bundle rejected after {attempt} tracking id collisions")
                    raise
                logger.warning(f"Tracking id collision on attempt {attempt}, regenerating")
                set_tracking_id(record, self.id_generator)
        raise PersistenceConflictError("Bundle was not submitted")

    @staticmethod
    def _populate_composition_id(record: Record, response: JSONDict) -> None:
        entries = response.get("entry") or []
        if not entries:
            return
        location = (entries[0].get("response") or {}).get("location")
        if not location:
            return
        composition = get_composition(record)
        if not composition.id:
            composition.id = resource_id_from_location(location, "Composition")

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------

    async def submit_declaration(self, record: Record, token: str) -> Record:
        """Create a record from a new declaration.

        The task is stamped IN_PROGRESS for draft tasks and DECLARED
        otherwise. Tracking id collisions are retried with a fresh id.

        Raises:
            InvalidBundleError: If the record has no entries or no event type
            PersistenceConflictError: If every submission attempt collided
        """
        claims, actor = await self._resolve_actor(token, WorkflowAction.SUBMIT)
        practitioner = actor.practitioner

        set_tracking_id(record, self.id_generator)
        task = select_or_create_task(record)
        event_type = get_event_type(record)
        setup_registration_type(task, event_type)

        in_progress = is_in_progress_declaration(record)
        status = RegStatus.IN_PROGRESS if in_progress else RegStatus.DECLARED
        await setup_registration_workflow(
            task,
            claims,
            status,
            status_reader=self.hearth,
            policy=self.policy,
            transitions=self.transitions,
        )
        setup_last_reg_user(task, practitioner)
        if not is_event_notification(record):
            await setup_last_reg_location(task, practitioner, self.directory)
        setup_author_on_notes(task, practitioner)

        if actor.system is not None:
            setup_system_identifier(task, actor.system)

        response = await self._submit_with_retry(record)
        self._populate_composition_id(record, response)
        logger.info(f"Declaration {task.tracking_id} submitted as {status.value}")

        event = WorkflowEvent.IN_PROGRESS_DECLARATION if in_progress else WorkflowEvent.NEW_DECLARATION
        await self._notify(event_type, event, record, token)
        return record

    async def validate(self, record: Record, token: str) -> Record:
        """Mark a declaration as validated."""
        claims, practitioner = await self._begin(token, WorkflowAction.VALIDATE)
        task = get_task(record)
        event_type = get_event_type(record)

        await self._stamp(task, claims, practitioner, RegStatus.VALIDATED)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.MARK_VALIDATED, record, token)
        return record

    async def update_declaration(self, record: Record, token: str) -> Record:
        """Mark a declaration as updated by a reviewer."""
        claims, practitioner = await self._begin(token, WorkflowAction.UPDATE)
        task = get_task(record)
        event_type = get_event_type(record)

        await self._stamp(task, claims, practitioner, RegStatus.DECLARATION_UPDATED)
        setup_author_on_notes(task, practitioner)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.UPDATE_DECLARATION, record, token)
        return record

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(self, record: Record, token: str) -> RegistrationOutcome:
        """Register a declaration.

        With an external validation gateway the task is parked in
        WAITING_VALIDATION and the record handed to the external system,
        which confirms through :meth:`confirm_registration`. Without one the
        registration number is generated inline.
        """
        claims, practitioner = await self._begin(token, WorkflowAction.REGISTER)
        task = get_task(record)
        event_type = get_event_type(record)

        if self.gateway is not None:
            await self._stamp(task, claims, practitioner, RegStatus.WAITING_VALIDATION)
            await self.hearth.update_resource(task)

            outcome = await self.gateway.invoke_registration_validation(
                record, auth_headers(token), token
            )
            if outcome.validation_error:
                status = RegStatus.REJECTED
            else:
                status = RegStatus.WAITING_VALIDATION
                await self._notify(
                    event_type, WorkflowEvent.WAITING_VALIDATION, outcome.record, token
                )
            return RegistrationOutcome(
                record=outcome.record, status=status, validation_error=outcome.validation_error
            )

        registration_number = self.id_generator.registration_number(
            event_type, task.tracking_id or ""
        )
        await mark_event_as_registered(
            task,
            registration_number,
            event_type,
            claims,
            status_reader=self.hearth,
            policy=self.policy,
            transitions=self.transitions,
        )
        await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)
        await self.hearth.update_resource(task)
        logger.info(f"Declaration {task.tracking_id} registered as {registration_number}")

        await self._notify(event_type, WorkflowEvent.MARK_REGISTERED, record, token)
        return RegistrationOutcome(
            record=record, status=RegStatus.REGISTERED, registration_number=registration_number
        )

    async def confirm_registration(
        self, composition_id: str, registration_number: str, token: str
    ) -> Task:
        """Complete a registration approved by the external validation system.

        Raises:
            EntityNotFoundError: If no task exists for the composition
            InvalidBundleError: If the stored task has no event type
            DuplicateTransitionError: If the record is already registered
        """
        claims, practitioner = await self._begin(token, WorkflowAction.CONFIRM_REGISTRATION)
        task = await self.hearth.fetch_task_by_composition_id(composition_id)
        event_type = task.event_type
        if event_type is None:
            raise InvalidBundleError(f"Task {task.id} carries no event type")

        await mark_event_as_registered(
            task,
            registration_number,
            event_type,
            claims,
            status_reader=self.hearth,
            policy=self.policy,
            transitions=self.transitions,
        )
        await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)
        await self.hearth.update_resource(task)
        logger.info(f"Composition {composition_id} registered as {registration_number}")

        await self._notify(event_type, WorkflowEvent.MARK_REGISTERED, Record.for_task(task), token)
        return task

    # ------------------------------------------------------------------
    # Rejection and duplicates
    # ------------------------------------------------------------------

    async def reject(self, record: Record, token: str, reason: RejectionReason) -> Record:
        """Reject (void) a declaration with a structured reason."""
        claims, practitioner = await self._begin(token, WorkflowAction.REJECT)
        task = get_task(record)
        event_type = get_event_type(record)

        await self._stamp(task, claims, practitioner, RegStatus.REJECTED)
        add_rejection_note(task, reason, practitioner)
        setup_author_on_notes(task, practitioner)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.MARK_VOIDED, record, token)
        return record

    async def mark_as_duplicate(
        self,
        record: Record,
        token: str,
        duplicate_of: str | None = None,
        reason: RejectionReason | None = None,
    ) -> Record:
        """Reject a declaration as a duplicate of another one."""
        claims, practitioner = await self._begin(token, WorkflowAction.MARK_DUPLICATE)
        task = get_task(record)
        event_type = get_event_type(record)

        await self._stamp(task, claims, practitioner, RegStatus.REJECTED)
        flag_duplicate(task, duplicate_of)
        add_rejection_note(task, reason or RejectionReason(reasons=["duplicate"]), practitioner)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.MARK_VOIDED, record, token)
        return record

    async def mark_not_duplicate(self, record: Record, token: str) -> Record:
        """Clear a duplicate flag; the status is left as it is."""
        _, practitioner = await self._begin(token, WorkflowAction.MARK_NOT_DUPLICATE)
        task = get_task(record)
        event_type = get_event_type(record)

        clear_duplicate_flag(task, practitioner)
        await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)
        touch_task(task)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.MARK_NOT_DUPLICATE, record, token)
        return record

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    async def certify(self, record: Record, token: str) -> Record:
        """Record a printed certificate. May be repeated."""
        claims, practitioner = await self._begin(token, WorkflowAction.CERTIFY)
        task = get_task(record)
        event_type = get_event_type(record)

        await self._stamp(task, claims, practitioner, RegStatus.CERTIFIED)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.MARK_CERTIFIED, record, token)
        return record

    async def issue(self, record: Record, token: str) -> Record:
        claims, practitioner = await self._begin(token, WorkflowAction.ISSUE)
        task = get_task(record)
        event_type = get_event_type(record)

        await self._stamp(task, claims, practitioner, RegStatus.ISSUED)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.MARK_ISSUED, record, token)
        return record

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------

    async def request_correction(self, record: Record, token: str) -> Record:
        """Flag a registered record for correction, keeping its current status.

        The persisted status is stored on the correction marker so that
        :meth:`reject_correction` can restore it.

        Raises:
            InvalidTransitionError: If the record is not REGISTERED, CERTIFIED or ISSUED
        """
        claims, practitioner = await self._begin(token, WorkflowAction.REQUEST_CORRECTION)
        task = get_task(record)
        event_type = get_event_type(record)

        previous = (
            await self.hearth.fetch_existing_reg_status(task.id) if task.id else task.reg_status
        )
        check_correction_allowed(previous)

        snapshot_status_for_correction(task, previous)
        await self._stamp(task, claims, practitioner, previous, check_duplicate=False)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.REQUEST_CORRECTION, record, token)
        return record

    async def reject_correction(self, record: Record, token: str) -> Record:
        """Drop a pending correction request and restore the pre-correction status."""
        _, practitioner = await self._begin(token, WorkflowAction.REJECT_CORRECTION)
        task = get_task(record)
        event_type = get_event_type(record)

        restore_status_after_correction(task)
        await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)
        await self.hearth.update_resource(task)

        await self._notify(event_type, WorkflowEvent.REJECT_CORRECTION, record, token)
        return record

    async def approve_correction(self, record: Record, token: str) -> Record:
        """Apply a requested correction; the record goes back to REGISTERED.

        Raises:
            BusinessRuleViolationError: If the task has no pending correction request
        """
        claims, practitioner = await self._begin(token, WorkflowAction.APPROVE_CORRECTION)
        task = get_task(record)
        event_type = get_event_type(record)

        clear_correction_request(task)
        await self._stamp(
            task, claims, practitioner, RegStatus.REGISTERED, check_duplicate=False
        )
        setup_author_on_notes(task, practitioner)
        await self.hearth.update_resource(task)
        logger.info(f"Correction of {task.tracking_id} approved")

        await self._notify(event_type, WorkflowEvent.APPROVE_CORRECTION, record, token)
        return record

    # ------------------------------------------------------------------
    # Bookkeeping and reads
    # ------------------------------------------------------------------

    async def touch(self, record: Record, token: str) -> Record:
        """Renew the last-modified stamp without changing the status.

        Record-search clients have no office, so the location stamp is skipped for them.
        """
        claims, practitioner = await self._begin(token, WorkflowAction.TOUCH)
        task = get_task(record)

        if not claims.has_scope(UserScope.RECORD_SEARCH):
            await setup_last_reg_location(task, practitioner, self.directory)
        setup_last_reg_user(task, practitioner)
        touch_task(task)
        await self.hearth.update_resource(task)
        return record

    async def fetch_task(
        self, composition_id: str, token: str, anonymous: bool | None = None
    ) -> Task:
        """Read the live task of a record.

        Args:
            composition_id: Id of the record's composition
            token: Bearer token of the reader
            anonymous: Strip the last-user/location/office extensions; by
                default only for system clients

        Returns:
            The stored task
        """
        claims = self.claims_extractor.extract(token)
        self.policy.authorize(claims, WorkflowAction.READ)
        task = await self.hearth.fetch_task_by_composition_id(composition_id)
        if anonymous or (anonymous is None and is_system_initiated(claims)):
            make_task_anonymous(task)
        return task

    async def aclose(self) -> None:
        """Close the HTTP clients of every collaborator."""
        await self.hearth.close()
        await self.directory.close()
        await self.notifications.close()
        if self.gateway is not None:
            await self.gateway.close()
