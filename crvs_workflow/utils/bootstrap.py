"""
Bootstrap utilities for application initialization.

Builds the workflow service and its collaborators from settings.
"""

from crvs_workflow.services.hearth.client import HearthClient
from crvs_workflow.services.notification.client import NotificationClient
from crvs_workflow.services.practitioner.directory import PractitionerDirectory
from crvs_workflow.services.workflow.orchestrator import WorkflowService
from crvs_workflow.services.workflow.policy import ScopeStatusPolicy
from crvs_workflow.services.workflow.tracking_id import DefaultIdGenerator
from crvs_workflow.services.workflow.validation_gateway import ExternalValidationGateway
from crvs_workflow.settings import Settings
from crvs_workflow.utils.auth import JwtClaimsExtractor
from crvs_workflow.utils.logger import logger


def create_workflow_service(settings: Settings) -> WorkflowService:
    """Wire a WorkflowService from settings.

    Args:
        settings: Application settings

    Returns:
        Service owning freshly created HTTP clients; close it with ``aclose``
    """
    hearth = HearthClient(settings.hearth_url, timeout=settings.http_timeout)
    directory = PractitionerDirectory(settings.user_mgnt_url, hearth, timeout=settings.http_timeout)
    notifications = NotificationClient(settings.events_url, timeout=settings.http_timeout)
    claims_extractor = JwtClaimsExtractor(
        settings.get_jwt_key(), issuer=settings.jwt_issuer, audience=settings.jwt_audience
    )
    policy = ScopeStatusPolicy()

    gateway = None
    if settings.external_validation_enabled:
        gateway = ExternalValidationGateway(
            settings.country_config_url,
            hearth,
            directory,
            notifications,
            claims_extractor,
            policy,
            timeout=settings.http_timeout,
        )
        logger.info(f"External registration validation via {settings.country_config_url}")

    return WorkflowService(
        hearth,
        directory,
        notifications,
        claims_extractor,
        DefaultIdGenerator(),
        policy=policy,
        gateway=gateway,
        max_submit_attempts=settings.tracking_id_max_attempts,
    )
