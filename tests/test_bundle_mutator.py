"""Tests for the bundle mutator stamping functions."""

import json
import re

import pytest

from crvs_workflow.exceptions import (
    BusinessRuleViolationError,
    DuplicateTransitionError,
    ExternalLookupError,
    InsufficientScopeError,
    InvalidBundleError,
    InvalidTransitionError,
)
from crvs_workflow.models import (
    Annotation,
    EventType,
    Extension,
    Practitioner,
    Record,
    RegStatus,
    Task,
    TokenClaims,
    get_composition,
    get_task,
)
from crvs_workflow.models.systems import (
    EVENT_TYPE_SYSTEM,
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
from crvs_workflow.services.workflow import DEFAULT_TRANSITIONS, DefaultIdGenerator, RejectionReason
from crvs_workflow.services.workflow.bundle_mutator import (
    add_rejection_note,
    clear_correction_request,
    clear_duplicate_flag,
    flag_duplicate,
    get_practitioner_ref,
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


class TestLastRegUser:
    def test_repeated_stamp_keeps_one_extension(self, birth_record, practitioner):
        task = get_task(birth_record)

        setup_last_reg_user(task, practitioner)
        setup_last_reg_user(task, practitioner)

        urls = [ext["url"] for ext in task.to_fhir()["extension"]]
        assert urls.count(REG_LAST_USER_URL) == 1
        assert task.get_extension(REG_LAST_USER_URL).value_reference.reference == "Practitioner/pr-1"

    def test_last_modified_set_only_once(self, birth_record, practitioner):
        task = get_task(birth_record)
        task.last_modified = "2020-01-01T00:00:00+00:00"

        setup_last_reg_user(task, practitioner)

        assert task.last_modified == "2020-01-01T00:00:00+00:00"

    def test_touch_renews_last_modified(self, birth_record):
        task = get_task(birth_record)
        task.last_modified = "2020-01-01T00:00:00+00:00"

        touch_task(task)

        assert task.last_modified > "2020-01-01T00:00:00+00:00"

    def test_practitioner_without_id(self, birth_record):
        with pytest.raises(ExternalLookupError, match="Invalid practitioner data found"):
            setup_last_reg_user(get_task(birth_record), Practitioner())


class TestIdentifiers:
    def test_tracking_id_and_registration_number_are_distinct_entries(self):
        task = Task()
        task.set_identifier(tracking_id_system(EventType.BIRTH), "B000001")
        task.push_identifier(registration_number_system(EventType.BIRTH), "2026B000001")

        assert len(task.to_fhir()["identifier"]) == 2

    def test_tracking_id_twice_keeps_latest(self):
        task = Task()
        system = tracking_id_system(EventType.BIRTH)
        task.set_identifier(system, "B000001")
        task.set_identifier(system, "B000002")

        assert task.to_fhir()["identifier"] == [{"system": system, "value": "B000002"}]


class TestSetTrackingId:
    def test_composition_and_task_share_tracking_id(self, birth_record):
        set_tracking_id(birth_record, DefaultIdGenerator())

        task = get_task(birth_record)
        composition = get_composition(birth_record)
        assert composition.identifier.value == task.identifier_value(
            tracking_id_system(EventType.BIRTH)
        )
        assert re.fullmatch(r"B[A-Z0-9]{6}", composition.identifier.value)

    def test_prefix_follows_event_type(self, record_payload):
        record = Record.model_validate(
            record_payload(doc_type="death-declaration", event="DEATH", tracking_id=None)
        )
        set_tracking_id(record, DefaultIdGenerator())

        assert get_task(record).tracking_id.startswith("D")
        assert len(get_task(record).tracking_id) == 7

    def test_creates_task_when_missing(self, record_payload, id_generator):
        payload = record_payload()
        del payload["entry"][1]
        record = Record.model_validate(payload)

        set_tracking_id(record, id_generator)

        assert get_task(record).tracking_id == "B000001"

    def test_empty_record(self, id_generator):
        with pytest.raises(InvalidBundleError):
            set_tracking_id(Record(entry=[]), id_generator)


class TestRegistrationWorkflow:
    @pytest.mark.asyncio
    async def test_status_derived_from_scope(self, birth_record, status_reader, policy):
        task = get_task(birth_record)
        claims = TokenClaims(sub="u", scope=["validate"])

        await setup_registration_workflow(task, claims, status_reader=status_reader, policy=policy)

        assert task.reg_status == RegStatus.VALIDATED

    @pytest.mark.asyncio
    async def test_no_scope_fails_without_mutating(self, birth_record, status_reader, policy):
        task = get_task(birth_record)

        with pytest.raises(InsufficientScopeError):
            await setup_registration_workflow(
                task, TokenClaims(sub="u"), status_reader=status_reader, policy=policy
            )
        assert task.reg_status == RegStatus.DECLARED

    @pytest.mark.asyncio
    async def test_duplicate_registered_is_rejected(
        self, birth_record, status_reader, policy, register_claims
    ):
        status_reader.statuses["task-1"] = RegStatus.REGISTERED
        task = get_task(birth_record)

        with pytest.raises(DuplicateTransitionError):
            await setup_registration_workflow(
                task, register_claims, RegStatus.REGISTERED, status_reader=status_reader, policy=policy
            )

    @pytest.mark.asyncio
    async def test_repeat_certify_is_allowed(
        self, birth_record, status_reader, policy, register_claims
    ):
        status_reader.statuses["task-1"] = RegStatus.CERTIFIED
        task = get_task(birth_record)

        await setup_registration_workflow(
            task,
            register_claims,
            RegStatus.CERTIFIED,
            status_reader=status_reader,
            policy=policy,
            transitions=DEFAULT_TRANSITIONS,
        )

        assert task.reg_status == RegStatus.CERTIFIED

    @pytest.mark.asyncio
    async def test_transition_table_enforced(
        self, birth_record, status_reader, policy, register_claims
    ):
        status_reader.statuses["task-1"] = RegStatus.ISSUED
        task = get_task(birth_record)

        with pytest.raises(InvalidTransitionError):
            await setup_registration_workflow(
                task,
                register_claims,
                RegStatus.VALIDATED,
                status_reader=status_reader,
                policy=policy,
                transitions=DEFAULT_TRANSITIONS,
            )

    @pytest.mark.asyncio
    async def test_unsaved_task_skips_lookup(self, record_payload, status_reader, policy, register_claims):
        record = Record.model_validate(record_payload(task_id=None))

        await setup_registration_workflow(
            get_task(record), register_claims, RegStatus.DECLARED, status_reader=status_reader, policy=policy
        )

        assert status_reader.calls == []

    @pytest.mark.asyncio
    async def test_check_can_be_skipped(self, birth_record, status_reader, policy, register_claims):
        status_reader.statuses["task-1"] = RegStatus.DECLARED

        await setup_registration_workflow(
            get_task(birth_record),
            register_claims,
            RegStatus.DECLARED,
            status_reader=status_reader,
            policy=policy,
            check_duplicate=False,
        )

        assert status_reader.calls == []

    @pytest.mark.asyncio
    async def test_mark_registered_appends_number(
        self, birth_record, status_reader, policy, register_claims
    ):
        task = get_task(birth_record)
        system = registration_number_system(EventType.BIRTH)
        task.push_identifier(system, "2025B123456")

        await mark_event_as_registered(
            task,
            "2026B123456",
            EventType.BIRTH,
            register_claims,
            status_reader=status_reader,
            policy=policy,
        )

        assert task.reg_status == RegStatus.REGISTERED
        assert task.registration_numbers == ["2025B123456", "2026B123456"]

    def test_registration_type_single_coding(self, birth_record):
        task = get_task(birth_record)
        setup_registration_type(task, EventType.DEATH)

        assert [(c.system, c.code) for c in task.code.coding] == [(EVENT_TYPE_SYSTEM, "DEATH")]


class TestLastRegLocation:
    @pytest.mark.asyncio
    async def test_sets_location_and_office(self, birth_record, practitioner, location_resolver):
        task = get_task(birth_record)

        await setup_last_reg_location(task, practitioner, location_resolver)

        location = task.get_extension(REG_LAST_LOCATION_URL)
        office = task.get_extension(REG_LAST_OFFICE_URL)
        assert location.value_reference.reference == "Location/district-1"
        assert office.value_reference.reference == "Location/office-1"
        assert office.value_string == "Ibombo District Office"

    @pytest.mark.asyncio
    async def test_failed_lookup_leaves_task_unchanged(self, birth_record, practitioner, location_resolver):
        task = get_task(birth_record)
        before = task.to_fhir()

        async def fail(practitioner_id):
            raise ExternalLookupError("No CRVS office found")

        location_resolver.get_practitioner_office = fail

        with pytest.raises(ExternalLookupError):
            await setup_last_reg_location(task, practitioner, location_resolver)
        assert task.to_fhir() == before


class TestNotesAndAnonymity:
    def test_existing_author_is_kept(self, birth_record, practitioner):
        task = get_task(birth_record)
        task.notes = [Annotation(text="first", author_string="X"), Annotation(text="second")]

        setup_author_on_notes(task, practitioner)

        assert task.notes[0].author_string == "X"
        assert task.notes[1].author_string == get_practitioner_ref(practitioner)

    def test_anonymous_removes_only_last_reg_extensions(self, birth_record):
        task = get_task(birth_record)
        for url in (REG_LAST_USER_URL, REG_LAST_LOCATION_URL, REG_LAST_OFFICE_URL, "keep-me"):
            task.set_extension(Extension(url=url, value_string="x"))
        identifiers_before = dict(task.identifiers)

        make_task_anonymous(task)

        assert list(task.extensions) == ["keep-me"]
        assert task.identifiers == identifiers_before

    def test_system_identifier(self, birth_record):
        task = get_task(birth_record)
        setup_system_identifier(task, {"name": "DHIS2", "username": "dhis", "type": "HEALTH", "id": "x"})

        assert json.loads(task.identifier_value(SYSTEM_IDENTIFIER_SYSTEM)) == {
            "name": "DHIS2",
            "username": "dhis",
            "type": "HEALTH",
        }


class TestRejectionAndCorrection:
    def test_rejection_note(self, birth_record, practitioner):
        task = get_task(birth_record)
        reason = RejectionReason(reasons=["duplicate"], comment="seen before")

        add_rejection_note(task, reason, practitioner)

        assert task.status_reason.text == "reason=duplicate&comment=seen+before"
        assert task.notes[-1].text == task.status_reason.text
        assert task.notes[-1].author_string == "Practitioner/pr-1"

    def test_correction_round_trip(self, birth_record):
        task = get_task(birth_record)
        snapshot_status_for_correction(task, RegStatus.CERTIFIED)
        task.set_reg_status(RegStatus.REGISTERED)

        restore_status_after_correction(task)

        assert task.reg_status == RegStatus.CERTIFIED
        assert task.get_extension(REQUEST_CORRECTION_URL) is None

    def test_restore_without_request(self, birth_record):
        with pytest.raises(BusinessRuleViolationError):
            restore_status_after_correction(get_task(birth_record))

    def test_clear_correction_keeps_status(self, birth_record):
        task = get_task(birth_record)
        snapshot_status_for_correction(task, RegStatus.ISSUED)

        clear_correction_request(task)

        assert task.get_extension(REQUEST_CORRECTION_URL) is None
        assert task.reg_status == RegStatus.DECLARED

    def test_clear_without_request(self, birth_record):
        with pytest.raises(BusinessRuleViolationError):
            clear_correction_request(get_task(birth_record))

    def test_duplicate_flags_are_exclusive(self, birth_record, practitioner):
        task = get_task(birth_record)

        flag_duplicate(task, "comp-0")
        assert task.get_extension(MARKED_AS_DUPLICATE_URL).value_string == "comp-0"

        clear_duplicate_flag(task, practitioner)
        assert task.get_extension(MARKED_AS_DUPLICATE_URL) is None
        assert (
            task.get_extension(MARKED_AS_NOT_DUPLICATE_URL).value_reference.reference
            == "Practitioner/pr-1"
        )
