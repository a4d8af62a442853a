"""
Bundle mutator: stamping operations on a record's task.

Every function mutates the task (or record) it receives in place and returns
it. Nothing here persists anything; the orchestrator writes the result only
after the whole mutation sequence has succeeded. Lookups that fail propagate
unchanged.
"""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from crvs_workflow.exceptions.domain import (
    BusinessRuleViolationError,
    DuplicateTransitionError,
    ExternalLookupError,
    InvalidBundleError,
)
from crvs_workflow.models.auth import TokenClaims
from crvs_workflow.models.base import EventType, RegStatus
from crvs_workflow.models.fhir import (
    Annotation,
    CodeableConcept,
    Coding,
    Extension,
    Identifier,
    Practitioner,
    Reference,
)
from crvs_workflow.models.record import (
    Record,
    Task,
    get_composition,
    get_event_type,
    select_or_create_task,
)
from crvs_workflow.models.systems import (
    COMPOSITION_IDENTIFIER_SYSTEM,
    EVENT_TYPE_SYSTEM,
    LAST_REG_EXTENSION_URLS,
    MARKED_AS_DUPLICATE_URL,
    MARKED_AS_NOT_DUPLICATE_URL,
    REG_LAST_LOCATION_URL,
    REG_LAST_OFFICE_URL,
    REG_LAST_USER_URL,
    REQUEST_CORRECTION_URL,
    SYSTEM_IDENTIFIER_SYSTEM,
    registration_number_system,
    tracking_id_system,
)
from crvs_workflow.services.workflow.policy import ScopeStatusPolicy
from crvs_workflow.services.workflow.ports import IdGenerator, LocationResolver, StatusReader
from crvs_workflow.services.workflow.rejection import RejectionReason
from crvs_workflow.services.workflow.status import TransitionTable, check_status_update
from crvs_workflow.utils.logger import logger


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def get_practitioner_ref(practitioner: Practitioner) -> str:
    """Return ``Practitioner/<id>`` for the acting practitioner.

    Raises:
        ExternalLookupError: If the resolved practitioner has no id
    """
    if not practitioner.id:
        raise ExternalLookupError("Invalid practitioner data found")
    return f"Practitioner/{practitioner.id}"


def setup_registration_type(task: Task, event_type: EventType) -> Task:
    """Set the single event-type coding of ``task.code``."""
    text = task.code.text if task.code else None
    task.code = CodeableConcept(
        coding=[Coding(system=EVENT_TYPE_SYSTEM, code=event_type.value)], text=text
    )
    return task


async def check_for_duplicate_status_update(
    task: Task,
    status: RegStatus,
    *,
    status_reader: StatusReader,
    transitions: TransitionTable | None = None,
) -> None:
    """Compare ``status`` against the status persisted for the task.

    Tasks without an id have never been stored and are not checked. CERTIFIED
    may be written repeatedly.

    Raises:
        DuplicateTransitionError: If the record is already in ``status``
        InvalidTransitionError: If ``transitions`` forbids the change
    """
    if not task.id:
        return

    previous = await status_reader.fetch_existing_reg_status(task.id)
    try:
        check_status_update(previous, status, transitions)
    except DuplicateTransitionError as e:
        logger.error(f"Task {task.id}: {e}")
        raise


async def setup_registration_workflow(
    task: Task,
    claims: TokenClaims,
    status: RegStatus | None = None,
    *,
    status_reader: StatusReader,
    policy: ScopeStatusPolicy,
    transitions: TransitionTable | None = None,
    check_duplicate: bool = True,
) -> Task:
    """Stamp the registration status on a task.

    Args:
        task: Task to stamp
        claims: Claims of the acting user
        status: Explicit status; derived from the token scope when omitted
        status_reader: Source of the persisted status for the duplicate guard
        policy: Scope policy deriving the default status
        transitions: Optional transition table enforced with the guard
        check_duplicate: Set to False for re-stamps that keep the current status

    Returns:
        The stamped task

    Raises:
        InsufficientScopeError: If no status is given and the token scope maps to none
        DuplicateTransitionError: If the record is already in the target status
    """
    target = status or policy.status_for(claims)
    if check_duplicate:
        await check_for_duplicate_status_update(
            task, target, status_reader=status_reader, transitions=transitions
        )
    task.set_reg_status(target)
    return task


def setup_last_reg_user(task: Task, practitioner: Practitioner) -> Task:
    """Record the acting practitioner; ``lastModified`` is only set when empty."""
    task.set_extension(
        Extension(
            url=REG_LAST_USER_URL,
            value_reference=Reference(reference=get_practitioner_ref(practitioner)),
        )
    )
    task.last_modified = task.last_modified or now_iso()
    return task


def touch_task(task: Task) -> Task:
    """Renew ``lastModified`` to the current time."""
    task.last_modified = now_iso()
    return task


async def setup_last_reg_location(
    task: Task, practitioner: Practitioner, location_resolver: LocationResolver
) -> Task:
    """Record the practitioner's catchment location and office.

    Both lookups run before the task is touched.

    Raises:
        ExternalLookupError: If the practitioner or one of the lookups is invalid
    """
    if not practitioner.id:
        raise ExternalLookupError("Invalid practitioner data found")

    location = await location_resolver.get_practitioner_primary_location(practitioner.id)
    office = await location_resolver.get_practitioner_office(practitioner.id)

    task.set_extension(
        Extension(
            url=REG_LAST_LOCATION_URL,
            value_reference=Reference(reference=location.reference, display=location.name),
        )
    )
    task.set_extension(
        Extension(
            url=REG_LAST_OFFICE_URL,
            value_string=office.name,
            value_reference=Reference(reference=office.reference, display=office.name),
        )
    )
    return task


def setup_author_on_notes(task: Task, practitioner: Practitioner) -> Task:
    """Fill in the author of notes that have none; existing authors are kept."""
    if not task.notes:
        return task
    author = get_practitioner_ref(practitioner)
    for note in task.notes:
        if not note.author_string:
            note.author_string = author
    return task


def set_tracking_id(record: Record, id_generator: IdGenerator) -> Record:
    """Generate a tracking id and write it to the composition and the task.

    Raises:
        InvalidBundleError: If the record has no first resource
        MalformedRecordError: If the first entry is not a Composition
    """
    if not record.entry or record.entry[0].resource is None:
        raise InvalidBundleError("Invalid FHIR bundle found for declaration")

    event_type = get_event_type(record)
    tracking_id = id_generator.tracking_id(event_type)

    composition = get_composition(record)
    if composition.identifier is None:
        composition.identifier = Identifier(system=COMPOSITION_IDENTIFIER_SYSTEM, value=tracking_id)
    else:
        composition.identifier.value = tracking_id

    task = select_or_create_task(record)
    task.set_identifier(tracking_id_system(event_type), tracking_id)
    return record


async def mark_event_as_registered(
    task: Task,
    registration_number: str,
    event_type: EventType,
    claims: TokenClaims,
    *,
    status_reader: StatusReader,
    policy: ScopeStatusPolicy,
    transitions: TransitionTable | None = None,
) -> Task:
    """Stamp REGISTERED and append the registration number.

    Earlier registration numbers are kept.
    """
    await setup_registration_workflow(
        task,
        claims,
        RegStatus.REGISTERED,
        status_reader=status_reader,
        policy=policy,
        transitions=transitions,
    )
    task.push_identifier(registration_number_system(event_type), registration_number)
    return task


def make_task_anonymous(task: Task) -> Task:
    """Strip the last-user, last-location and last-office extensions."""
    for url in LAST_REG_EXTENSION_URLS:
        task.remove_extension(url)
    return task


def setup_system_identifier(task: Task, system_info: Mapping[str, Any]) -> Task:
    """Record which integrated system submitted the task."""
    payload = {key: system_info.get(key) for key in ("name", "username", "type")}
    task.set_identifier(SYSTEM_IDENTIFIER_SYSTEM, json.dumps(payload, separators=(",", ":")))
    return task


def add_rejection_note(
    task: Task, reason: RejectionReason, practitioner: Practitioner | None = None
) -> Task:
    """Store a rejection reason as the status reason and as a new note."""
    text = reason.to_legacy_text()
    task.status_reason = CodeableConcept(text=text)
    task.notes.append(
        Annotation(
            text=text,
            time=now_iso(),
            author_string=get_practitioner_ref(practitioner) if practitioner else None,
        )
    )
    return task


def snapshot_status_for_correction(task: Task, previous: RegStatus | None) -> Task:
    """Mark a correction request, keeping the status to restore afterwards."""
    task.set_extension(
        Extension(url=REQUEST_CORRECTION_URL, value_string=previous.value if previous else None)
    )
    return task


def restore_status_after_correction(task: Task) -> Task:
    """Drop the correction marker and put back the pre-correction status.

    Raises:
        BusinessRuleViolationError: If the task has no pending correction request
    """
    marker = task.get_extension(REQUEST_CORRECTION_URL)
    if marker is None or not marker.value_string:
        raise BusinessRuleViolationError("Declaration has no pending correction request")
    status = RegStatus(marker.value_string)
    task.remove_extension(REQUEST_CORRECTION_URL)
    task.set_reg_status(status)
    return task


def clear_correction_request(task: Task) -> Task:
    """Drop the correction marker once the correction has been applied.

    Raises:
        BusinessRuleViolationError: If the task has no pending correction request
    """
    if task.get_extension(REQUEST_CORRECTION_URL) is None:
        raise BusinessRuleViolationError("Declaration has no pending correction request")
    task.remove_extension(REQUEST_CORRECTION_URL)
    return task


def flag_duplicate(task: Task, duplicate_of: str | None = None) -> Task:
    task.remove_extension(MARKED_AS_NOT_DUPLICATE_URL)
    task.set_extension(Extension(url=MARKED_AS_DUPLICATE_URL, value_string=duplicate_of))
    return task


def clear_duplicate_flag(task: Task, practitioner: Practitioner) -> Task:
    task.remove_extension(MARKED_AS_DUPLICATE_URL)
    task.set_extension(
        Extension(
            url=MARKED_AS_NOT_DUPLICATE_URL,
            value_reference=Reference(reference=get_practitioner_ref(practitioner)),
        )
    )
    return task
