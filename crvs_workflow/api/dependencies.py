"""
Common dependencies for workflow API endpoints.
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crvs_workflow.exceptions.domain import AuthenticationError, ConfigurationError
from crvs_workflow.services.workflow.orchestrator import WorkflowService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """
    Get the raw bearer token of the request.

    The token is decoded by the workflow service, which forwards it to
    collaborating services unchanged.

    Raises:
        AuthenticationError: If no bearer token was sent
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    return credentials.credentials


async def get_workflow_service(request: Request) -> WorkflowService:
    """Get the workflow service created during application startup."""
    service: WorkflowService | None = getattr(request.app.state, "workflow_service", None)
    if service is None:
        raise ConfigurationError("Workflow service is not initialized")
    return service


BearerToken = Annotated[str, Depends(get_bearer_token)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
