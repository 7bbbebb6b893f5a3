"""Hooks for integration types that need no remote access."""

from app.schemas.integration import (
    AccessCheckError,
    AccessCheckResponse,
    AccessCheckResult,
    IntegrationRead,
    NewIntegration,
)
from app.services.integrations.github_behavior import ACCESS_CHECK_NOT_SUPPORTED
from app.services.integrations.types import IntegrationContext, IntegrationTypeBehavior


async def _static_file_pre_create(candidate: NewIntegration, ctx: IntegrationContext) -> bool:
    metadata = dict(candidate.metadata or {})
    metadata.setdefault("file_count", 0)
    candidate.metadata = metadata
    return True


async def _static_file_access_check(integration: IntegrationRead, ctx: IntegrationContext) -> AccessCheckResponse:
    # Files are uploaded directly, there is nothing remote to lose access to
    return AccessCheckResponse(result=AccessCheckResult(has_access=True, status=integration.status))


async def _unsupported_access_check(integration: IntegrationRead, ctx: IntegrationContext) -> AccessCheckResponse:
    return AccessCheckResponse(error=AccessCheckError(code=400, reason=ACCESS_CHECK_NOT_SUPPORTED))


def build_static_file_behavior() -> IntegrationTypeBehavior:
    return IntegrationTypeBehavior(
        handle_access_check=_static_file_access_check,
        pre_create=_static_file_pre_create,
    )


def build_unknown_behavior() -> IntegrationTypeBehavior:
    return IntegrationTypeBehavior(handle_access_check=_unsupported_access_check)
