"""
HTTP mapping of workflow errors.

Client-side errors (bad token, missing scope, malformed record, refused
transition) are answered with their message and the error class name in
``error`` so callers can tell a duplicate transition from a lost write.
Failures of Hearth, user-management or the country system are logged with
their upstream detail and answered with a generic message.
"""

from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

from crvs_workflow.utils.logger import logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from crvs_workflow.exceptions.domain import CrvsError, ExternalServiceError


def _client_error(
    status_code: int, exc: "CrvsError", fallback: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc) or fallback, "error": type(exc).__name__},
        headers=headers,
    )


def _upstream_failure(status_code: int, exc: "ExternalServiceError", public_message: str) -> JSONResponse:
    logger.error(
        f"{type(exc).__name__}: {exc} (upstream status {exc.status_code}) {exc.detail or ''}"
    )
    return JSONResponse(status_code=status_code, content={"detail": public_message})


def setup_exception_handlers(app: "FastAPI") -> None:
    """Register the workflow error handlers on ``app``.

    Args:
        app: FastAPI application instance
    """
    # Imported here so that the API package can be imported before the domain layer
    from crvs_workflow.exceptions.domain import (
        AuthenticationError,
        AuthorizationError,
        BusinessRuleViolationError,
        ConfigurationError,
        EntityNotFoundError,
        ExternalServiceError,
        PersistenceError,
        ValidationError,
    )

    @app.exception_handler(EntityNotFoundError)
    async def handle_missing_resource(_: Request, exc: EntityNotFoundError) -> JSONResponse:
        return _client_error(status.HTTP_404_NOT_FOUND, exc, "Record not found")

    @app.exception_handler(AuthenticationError)
    async def handle_bad_token(_: Request, exc: AuthenticationError) -> JSONResponse:
        return _client_error(
            status.HTTP_401_UNAUTHORIZED,
            exc,
            "Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(AuthorizationError)
    async def handle_missing_scope(_: Request, exc: AuthorizationError) -> JSONResponse:
        return _client_error(status.HTTP_403_FORBIDDEN, exc, "Action not allowed for this token")

    @app.exception_handler(ValidationError)
    async def handle_malformed_record(_: Request, exc: ValidationError) -> JSONResponse:
        return _client_error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, "Record is malformed")

    @app.exception_handler(BusinessRuleViolationError)
    async def handle_refused_transition(
        _: Request, exc: BusinessRuleViolationError
    ) -> JSONResponse:
        """Duplicate or disallowed transitions and lost conditional writes."""
        logger.warning(f"Workflow refused: {exc}")
        return _client_error(status.HTTP_409_CONFLICT, exc, "Workflow rule violated")

    @app.exception_handler(PersistenceError)
    async def handle_persistence_failure(_: Request, exc: PersistenceError) -> JSONResponse:
        return _upstream_failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, exc, "Saving the record failed"
        )

    @app.exception_handler(ExternalServiceError)
    async def handle_upstream_failure(_: Request, exc: ExternalServiceError) -> JSONResponse:
        return _upstream_failure(status.HTTP_502_BAD_GATEWAY, exc, "A dependent service failed")

    @app.exception_handler(ConfigurationError)
    async def handle_misconfiguration(_: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error(f"Configuration error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Service misconfigured"},
        )
