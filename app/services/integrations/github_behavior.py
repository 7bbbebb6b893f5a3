"""Lifecycle hooks for ``github`` integrations (one integration per repository)."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.models.integration import AccessErrorCode, IntegrationStatus
from app.schemas.github import GitHubApp
from app.schemas.integration import (
    AccessCheckError,
    AccessCheckResponse,
    AccessCheckResult,
    GithubRepoIntegrationMetadata,
    IntegrationRead,
    IntegrationUpdate,
    NewIntegration,
)
from app.services.github.exceptions import INSTALLATION_NOT_CONNECTED
from app.services.github.github_app_client import BaseGitHubAppClient
from app.services.github.installation_store import InstallationStore
from app.services.integrations.types import IntegrationContext, IntegrationTypeBehavior

logger = logging.getLogger(__name__)

REPO_FULL_NAME = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

ACCESS_CHECK_NOT_SUPPORTED = "Integration does not support access checks"
GITHUB_APP_NOT_FOUND = "GitHub App not found"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def read_github_metadata(
    metadata: Optional[Dict[str, Any]], integration_id: Optional[int] = None
) -> GithubRepoIntegrationMetadata:
    """Typed view over stored metadata that never raises.

    Records written before type validation may carry wrong-typed keys; those are
    read as having no installation and no access error, keeping only ``repo``.
    """
    try:
        return GithubRepoIntegrationMetadata.model_validate(metadata or {})
    except ValidationError as exc:
        logger.warning(
            f"Malformed metadata on GitHub integration {integration_id}: {exc.error_count()} invalid field(s)",
            extra={"integration_id": integration_id},
        )
        repo = (metadata or {}).get("repo")
        return GithubRepoIntegrationMetadata(repo=repo if isinstance(repo, str) else None)


def build_github_behavior(
    app: Optional[GitHubApp],
    client: Optional[BaseGitHubAppClient],
    installation_store: Optional[InstallationStore] = None,
) -> IntegrationTypeBehavior:
    """Hooks for the given App. Without an App, access checks report it as missing.

    With an ``installation_store`` the hooks only bind integrations to installations
    the tenant has onboarded.
    """

    async def is_connected(installation_id: int) -> bool:
        if installation_store is None:
            return True
        return await installation_store.lookup_by_installation_id(installation_id) is not None

    async def pre_create(candidate: NewIntegration, ctx: IntegrationContext) -> bool:
        metadata = dict(candidate.metadata or {})
        repo = metadata.get("repo")
        if not isinstance(repo, str) or not REPO_FULL_NAME.match(repo):
            logger.info(
                "github_integration_rejected",
                extra={"integration_name": candidate.name, "reason": "invalid_repo"},
            )
            return False
        try:
            parsed = GithubRepoIntegrationMetadata.model_validate(metadata)
        except ValidationError:
            logger.info(
                "github_integration_rejected",
                extra={"integration_name": candidate.name, "reason": "invalid_metadata"},
            )
            return False

        if parsed.installation_id and not await is_connected(parsed.installation_id):
            logger.warning(
                "github_installation_not_connected",
                extra={"integration_name": candidate.name, "installation_id": parsed.installation_id},
            )
            return False

        metadata.setdefault("branch", "main")
        metadata.setdefault("features", [])
        if app is not None and not metadata.get("github_app_id"):
            metadata["github_app_id"] = app.app_id
        if not metadata.get("installation_id"):
            candidate.status = IntegrationStatus.PENDING_INSTALLATION
        candidate.metadata = metadata
        return True

    async def handle_access_check(integration: IntegrationRead, ctx: IntegrationContext) -> AccessCheckResponse:
        metadata = read_github_metadata(integration.metadata, integration.id)
        if not metadata.repo or not metadata.github_app_id:
            return AccessCheckResponse(error=AccessCheckError(code=400, reason=ACCESS_CHECK_NOT_SUPPORTED))
        if client is None or client.app.app_id != metadata.github_app_id:
            return AccessCheckResponse(
                error=AccessCheckError(
                    code=400,
                    reason=GITHUB_APP_NOT_FOUND,
                    context={"github_app_id": metadata.github_app_id},
                )
            )

        try:
            access = await client.check_repository_access(metadata.repo)
            if access is None:
                return AccessCheckResponse(
                    error=AccessCheckError(
                        code=502,
                        reason="failed_to_list_installations",
                        context={"repo": metadata.repo},
                    )
                )

            if access.has_access and not await is_connected(access.installation_id):
                logger.warning(
                    "github_installation_not_connected",
                    extra={"integration_id": integration.id, "installation_id": access.installation_id},
                )
                return AccessCheckResponse(
                    error=AccessCheckError(
                        code=403,
                        reason=INSTALLATION_NOT_CONNECTED,
                        context={"repo": metadata.repo, "installation_id": access.installation_id},
                    )
                )

            updated_metadata = dict(integration.metadata or {})
            updated_metadata["last_access_check"] = utc_now_iso()
            if access.has_access:
                status = IntegrationStatus.ACTIVE
                updated_metadata["installation_id"] = access.installation_id
                updated_metadata.pop("access_error", None)
            else:
                status = IntegrationStatus.NEEDS_REPO_ACCESS
                updated_metadata["access_error"] = AccessErrorCode.REPO_NOT_ACCESSIBLE_BY_APP.value

            response = await ctx.manager.update_integration(
                integration.id, IntegrationUpdate(status=status, metadata=updated_metadata)
            )
            if response.error is not None:
                return AccessCheckResponse(
                    error=AccessCheckError(
                        code=response.error.status_code,
                        reason=response.error.error,
                        context={"integration_id": integration.id},
                    )
                )

            logger.info(
                "github_access_checked",
                extra={"integration_id": integration.id, "repo": metadata.repo, "has_access": access.has_access},
            )
            return AccessCheckResponse(result=AccessCheckResult(has_access=access.has_access, status=status))
        except Exception as exc:
            logger.exception("GitHub access check failed", extra={"integration_id": integration.id})
            return AccessCheckResponse(
                error=AccessCheckError(code=500, reason="access_check_failed", context={"error": str(exc)})
            )

    return IntegrationTypeBehavior(
        handle_access_check=handle_access_check,
        pre_create=pre_create,
    )
