"""Refresh locally known GitHub installations from the App's remote installations.

The periodic sync only refreshes rows the tenant already owns. New installations
are recorded exclusively through the installation callback
(``upsert_installation_container``), so a sync can never attach an account to a
tenant that did not install the App itself.
"""

import logging
from typing import List, Optional

from app.schemas.github import (
    GitHubApp,
    GitHubAppInstallation,
    GitHubInstallationRead,
    NewGitHubInstallation,
)
from app.services.github.github_app_client import BaseGitHubAppClient, GitHubAppClient
from app.services.github.installation_store import InstallationStore

logger = logging.getLogger(__name__)


async def sync_all_installations_for_app(
    app: GitHubApp,
    store: InstallationStore,
    client: Optional[BaseGitHubAppClient] = None,
) -> List[GitHubAppInstallation]:
    """Update every local installation row from the remote App and return the installations touched.

    Installations are processed one at a time. An installation whose token or
    repository listing fails is skipped and keeps its previous state. Store errors
    propagate.
    """
    local_installations = await store.list_installations()
    if not local_installations:
        return []

    client = client or GitHubAppClient(app)
    remote_installations = await client.list_installations()
    if remote_installations is None:
        logger.warning(f"Could not list installations for GitHub App {app.app_id}; skipping sync")
        return []

    by_name = {installation.name: installation for installation in local_installations}
    synced: List[GitHubAppInstallation] = []

    for installation in remote_installations:
        login = installation.account.login
        existing = by_name.get(login)
        if existing is None:
            logger.info(
                "github_installation_not_onboarded",
                extra={"account_login": login, "installation_id": installation.id},
            )
            continue

        token = await client.mint_installation_token(installation.id)
        if token is None:
            logger.warning(f"Skipping installation {installation.id} ({login}): no access token")
            continue

        repositories = await client.list_repositories_for_token(token)
        if repositories is None:
            logger.warning(f"Skipping installation {installation.id} ({login}): repository listing failed")
            continue

        await store.update_installation(
            existing.model_copy(
                update={
                    "installation_id": installation.id,
                    "container_type": installation.container_type,
                    "repos": [repository.full_name for repository in repositories],
                }
            )
        )
        synced.append(installation)
        logger.info(
            "github_installation_synced",
            extra={"account_login": login, "installation_id": installation.id, "repo_count": len(repositories)},
        )

    return synced


async def upsert_installation_container(
    installation: GitHubAppInstallation,
    installation_id: int,
    repo_names: List[str],
    store: InstallationStore,
    flow_name: str = "installation",
) -> GitHubInstallationRead:
    """Create the local row for an installation, or refresh it in place if it exists."""
    login = installation.account.login
    container_type = installation.container_type
    existing = await store.lookup_by_name(login)

    if existing is None:
        created = await store.create_installation(
            NewGitHubInstallation(
                name=login,
                container_type=container_type,
                installation_id=installation_id,
                repos=repo_names,
            )
        )
        logger.info(
            f"{flow_name}: created GitHub installation container",
            extra={"account_login": login, "installation_id": installation_id},
        )
        return created

    updated = await store.update_installation(
        existing.model_copy(
            update={
                "container_type": container_type,
                "installation_id": installation_id,
                "repos": list(repo_names),
            }
        )
    )
    logger.info(
        f"{flow_name}: updated GitHub installation container",
        extra={"account_login": login, "installation_id": installation_id},
    )
    return updated
