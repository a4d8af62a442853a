"""
Main API application module.

This module creates and configures the FastAPI application with the records
router, the domain exception handlers and the correlation-id middleware.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from crvs_workflow import __version__
from crvs_workflow.api.exception_handlers import setup_exception_handlers
from crvs_workflow.api.routers import records
from crvs_workflow.settings import settings
from crvs_workflow.utils.bootstrap import create_workflow_service
from crvs_workflow.utils.logger import CORRELATION_HEADER, correlation_scope, logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Creates the workflow service and closes its HTTP clients on shutdown.
    """
    app.state.workflow_service = create_workflow_service(settings)
    logger.info(f"Workflow service started against Hearth at {settings.hearth_url}")

    try:
        yield
    finally:
        await app.state.workflow_service.aclose()
        logger.info("Application shutdown")


def create_app(root_path: str = "/") -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        root_path: The root path for the application

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="CRVS Workflow",
        description="Registration-record workflow for civil registration",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        root_path=root_path,
    )

    setup_exception_handlers(app)

    @app.middleware("http")
    async def bind_correlation_id(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    app.include_router(records.router, prefix="/api/records")

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


# Create default application instance
app = create_app(root_path=settings.root_url)
