"""Orphan cleanup, access healing and the installation ownership guard."""

import logging
from typing import Iterable, List, Set

from app.models.integration import IntegrationStatus, IntegrationType
from app.schemas.github import GitHubInstallationRead
from app.schemas.integration import GithubRepoIntegrationMetadata, IntegrationRead
from app.services.github.exceptions import InstallationNotConnectedError
from app.services.github.installation_store import InstallationStore
from app.services.integrations.github_behavior import read_github_metadata
from app.services.integrations.manager import IntegrationsManager

logger = logging.getLogger(__name__)

ORPHAN_STATUSES_WITHOUT_INSTALLATION = {IntegrationStatus.NEEDS_REPO_ACCESS, IntegrationStatus.ERROR}


def github_metadata(integration: IntegrationRead) -> GithubRepoIntegrationMetadata:
    return read_github_metadata(integration.metadata, integration.id)


def is_orphaned_github_integration(integration: IntegrationRead, valid_installation_ids: Set[int]) -> bool:
    """True when a ``github`` integration points at an installation this tenant no longer has.

    Integrations without an installation id are orphans only when they are already
    failing; pending and active records are left alone.
    """
    if integration.type != IntegrationType.GITHUB:
        return False
    installation_id = github_metadata(integration).installation_id
    if installation_id is not None:
        return installation_id not in valid_installation_ids
    return integration.status in ORPHAN_STATUSES_WITHOUT_INSTALLATION


async def cleanup_orphaned_github_integrations(
    manager: IntegrationsManager,
    installations: Iterable[GitHubInstallationRead],
    integrations: Iterable[IntegrationRead],
) -> int:
    """Delete orphaned ``github`` integrations through the orchestrator. Returns how many were deleted."""
    valid_ids = {installation.installation_id for installation in installations}
    deleted = 0

    for integration in integrations:
        if not is_orphaned_github_integration(integration, valid_ids):
            continue
        try:
            response = await manager.delete_integration(integration)
        except Exception:
            logger.exception("Failed to delete orphaned integration", extra={"integration_id": integration.id})
            continue
        if response.error is not None:
            logger.warning(
                f"Orphaned integration {integration.id} not deleted: {response.error.error}",
                extra={"integration_id": integration.id, "status_code": response.error.status_code},
            )
            continue
        deleted += 1
        logger.info(
            "orphaned_github_integration_deleted",
            extra={
                "integration_id": integration.id,
                "repo": github_metadata(integration).repo,
                "installation_id": github_metadata(integration).installation_id,
            },
        )

    return deleted


async def heal_github_integrations(manager: IntegrationsManager, integrations: Iterable[IntegrationRead]) -> int:
    """Re-check access for ``github`` integrations flagged with an access error. Returns how many recovered."""
    healed = 0
    for integration in integrations:
        if integration.type != IntegrationType.GITHUB or not github_metadata(integration).access_error:
            continue
        try:
            response = await manager.handle_access_check(integration)
        except Exception as exc:
            logger.debug(f"Access check failed for integration {integration.id}: {exc}")
            continue
        if response.result is not None and response.result.has_access:
            healed += 1
    return healed


async def ensure_installation_connected(store: InstallationStore, installation_id: int) -> GitHubInstallationRead:
    """Raise unless the current tenant's store holds this installation.

    Remote visibility is not ownership: an App installation is shared by every
    tenant of the App, only the local row proves this tenant onboarded it.
    """
    installation = await store.lookup_by_installation_id(installation_id)
    if installation is None:
        logger.warning(
            "github_installation_not_connected",
            extra={"installation_id": installation_id},
        )
        raise InstallationNotConnectedError(installation_id)
    return installation


def integrations_for_installation(
    installation: GitHubInstallationRead, integrations: Iterable[IntegrationRead]
) -> List[IntegrationRead]:
    """``github`` integrations bound to an installation by id or by repository owner."""
    prefix = f"{installation.name.lower()}/"
    matched = []
    for integration in integrations:
        if integration.type != IntegrationType.GITHUB:
            continue
        metadata = github_metadata(integration)
        if metadata.installation_id == installation.installation_id or (
            metadata.repo and metadata.repo.lower().startswith(prefix)
        ):
            matched.append(integration)
    return matched
