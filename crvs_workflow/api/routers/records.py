"""
Records router.

One POST endpoint per workflow action. Each takes the record bundle (FHIR
JSON) and the actor's bearer token and returns the mutated record.
"""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from crvs_workflow.api.dependencies import BearerToken, WorkflowServiceDep
from crvs_workflow.models.record import Record
from crvs_workflow.services.workflow.rejection import RejectionReason

router = APIRouter(tags=["Records"])


class RejectRequest(BaseModel):
    """Record to reject and why."""

    record: Record
    reason: RejectionReason


class DuplicateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    record: Record
    duplicate_of: str | None = None
    reason: RejectionReason | None = None


class ConfirmRegistrationRequest(BaseModel):
    """Callback payload of the external validation system."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    registration_number: str


@router.post("/declarations", status_code=201)
async def submit_declaration(
    record: Record, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    """Submit a new declaration (IN_PROGRESS or DECLARED)."""
    result = await service.submit_declaration(record, token)
    return result.to_fhir()


@router.post("/validate")
async def validate(record: Record, token: BearerToken, service: WorkflowServiceDep) -> dict[str, Any]:
    return (await service.validate(record, token)).to_fhir()


@router.post("/update")
async def update_declaration(
    record: Record, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    return (await service.update_declaration(record, token)).to_fhir()


@router.post("/register")
async def register(record: Record, token: BearerToken, service: WorkflowServiceDep) -> dict[str, Any]:
    """Register a declaration.

    Returns:
        The record with the resulting status, the registration number when
        issued inline, and ``validationError`` when external validation
        failed and the record was rejected.
    """
    outcome = await service.register(record, token)
    return {
        "record": outcome.record.to_fhir(),
        "status": outcome.status.value,
        "registrationNumber": outcome.registration_number,
        "validationError": outcome.validation_error,
    }


@router.post("/{composition_id}/confirm-registration")
async def confirm_registration(
    composition_id: str,
    payload: ConfirmRegistrationRequest,
    token: BearerToken,
    service: WorkflowServiceDep,
) -> dict[str, Any]:
    """Complete a registration approved by the external validation system."""
    task = await service.confirm_registration(composition_id, payload.registration_number, token)
    return task.to_fhir()


@router.post("/reject")
async def reject(
    payload: RejectRequest, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    return (await service.reject(payload.record, token, payload.reason)).to_fhir()


@router.post("/certify")
async def certify(record: Record, token: BearerToken, service: WorkflowServiceDep) -> dict[str, Any]:
    return (await service.certify(record, token)).to_fhir()


@router.post("/issue")
async def issue(record: Record, token: BearerToken, service: WorkflowServiceDep) -> dict[str, Any]:
    return (await service.issue(record, token)).to_fhir()


@router.post("/request-correction")
async def request_correction(
    record: Record, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    return (await service.request_correction(record, token)).to_fhir()


@router.post("/reject-correction")
async def reject_correction(
    record: Record, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    return (await service.reject_correction(record, token)).to_fhir()


@router.post("/approve-correction")
async def approve_correction(
    record: Record, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    return (await service.approve_correction(record, token)).to_fhir()


@router.post("/mark-duplicate")
async def mark_as_duplicate(
    payload: DuplicateRequest, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    result = await service.mark_as_duplicate(
        payload.record, token, duplicate_of=payload.duplicate_of, reason=payload.reason
    )
    return result.to_fhir()


@router.post("/mark-not-duplicate")
async def mark_not_duplicate(
    record: Record, token: BearerToken, service: WorkflowServiceDep
) -> dict[str, Any]:
    return (await service.mark_not_duplicate(record, token)).to_fhir()


@router.post("/touch")
async def touch(record: Record, token: BearerToken, service: WorkflowServiceDep) -> dict[str, Any]:
    return (await service.touch(record, token)).to_fhir()


@router.get("/{composition_id}/task")
async def fetch_task(
    composition_id: str,
    token: BearerToken,
    service: WorkflowServiceDep,
    anonymous: bool | None = None,
) -> dict[str, Any]:
    """Read the live task of a record."""
    task = await service.fetch_task(composition_id, token, anonymous=anonymous)
    return task.to_fhir()
