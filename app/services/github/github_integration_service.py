"""Per-tenant GitHub integration operations: sync, onboarding, repository enablement."""

import logging
from functools import lru_cache
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.models.integration import IntegrationStatus, IntegrationType
from app.schemas.github import (
    GitHubApp,
    GitHubInstallationRead,
    GitHubSummaryResponse,
    InstallationFetchError,
    InstallationOverview,
    InstallationSyncResponse,
)
from app.schemas.integration import IntegrationRead, NewIntegration
from app.services.github.exceptions import (
    GitHubAppNotConfiguredError,
    GitHubIntegrationError,
    InstallationCallbackError,
    InstallationNotFoundError,
    IntegrationNotFoundError,
    RepositoryNotInstalledError,
)
from app.services.github.github_app_client import BaseGitHubAppClient, GitHubAppClient
from app.services.github.github_app_client_inmemory import InMemoryGitHubAppClient
from app.services.github.installation_store import GitHubInstallationStore, InstallationStore
from app.services.github.installation_sync import (
    sync_all_installations_for_app,
    upsert_installation_container,
)
from app.services.github.integration_sweep import (
    cleanup_orphaned_github_integrations,
    ensure_installation_connected,
    github_metadata,
    heal_github_integrations,
    integrations_for_installation,
)
from app.services.integration_store import SQLAlchemyIntegrationStore
from app.services.integrations import build_integrations_manager
from app.services.integrations.github_behavior import utc_now_iso
from app.services.integrations.manager import IntegrationsManager

logger = logging.getLogger(__name__)

CALLBACK_SETUP_ACTIONS = {"install", "update"}
ATTENTION_STATUSES = {IntegrationStatus.NEEDS_REPO_ACCESS, IntegrationStatus.ERROR}


class GitHubIntegrationService:
    """GitHub operations for one tenant.

    ``manager`` and ``installation_store`` are bound to the tenant's database; the
    App and client are shared by every tenant.
    """

    def __init__(
        self,
        manager: IntegrationsManager,
        installation_store: InstallationStore,
        app: Optional[GitHubApp],
        client: Optional[BaseGitHubAppClient],
    ):
        self.manager = manager
        self.installation_store = installation_store
        self.app = app
        self.client = client

    def _require_client(self) -> BaseGitHubAppClient:
        if self.app is None or self.client is None:
            raise GitHubAppNotConfiguredError("GitHub App is not configured")
        return self.client

    async def sync_installations(self) -> InstallationSyncResponse:
        """Sync, then remove orphans, then heal. Each stage fails independently."""
        synced_count = 0
        if self.app is not None and self.client is not None:
            try:
                synced = await sync_all_installations_for_app(self.app, self.installation_store, self.client)
                synced_count = len(synced)
            except Exception:
                logger.exception("GitHub installation sync failed")
        else:
            logger.info("github_sync_skipped", extra={"reason": "app_not_configured"})

        deleted = 0
        try:
            deleted = await self.cleanup_orphaned_integrations()
        except Exception:
            logger.exception("Orphaned integration cleanup failed")

        healed = 0
        try:
            healed = await self.heal_integrations()
        except Exception:
            logger.exception("Integration healing failed")

        logger.info(
            "github_installation_sync_complete",
            extra={"synced_installations": synced_count, "deleted_integrations": deleted, "healed_count": healed},
        )
        return InstallationSyncResponse(
            message="GitHub installations synced",
            synced_installations=synced_count,
            deleted_integrations=deleted,
            healed_count=healed,
        )

    async def cleanup_orphaned_integrations(self) -> int:
        # Listing failures propagate: never delete against a partial view
        installations = await self.installation_store.list_installations()
        integrations = await self.manager.list_integrations()
        return await cleanup_orphaned_github_integrations(self.manager, installations, integrations)

    async def heal_integrations(self) -> int:
        return await heal_github_integrations(self.manager, await self.manager.list_integrations())

    async def find_repository_integration(self, repo_full_name: str) -> Optional[IntegrationRead]:
        wanted = repo_full_name.lower()
        for integration in await self.manager.list_integrations():
            if integration.type != IntegrationType.GITHUB:
                continue
            repo = github_metadata(integration).repo
            if repo and repo.lower() == wanted:
                return integration
        return None

    async def enable_repository(
        self, owner: str, repo: str, branch: Optional[str] = None
    ) -> Tuple[IntegrationRead, bool]:
        """Create the integration for a repository. Returns (integration, created)."""
        full_name = f"{owner}/{repo}"
        existing = await self.find_repository_integration(full_name)
        if existing is not None:
            return existing, False

        client = self._require_client()
        access = await client.check_repository_access(full_name)
        if access is None:
            raise GitHubIntegrationError("Failed to list GitHub App installations", status_code=502)
        if not access.has_access or access.installation_id is None:
            raise RepositoryNotInstalledError(full_name)

        await ensure_installation_connected(self.installation_store, access.installation_id)

        response = await self.manager.create_integration(
            NewIntegration(
                type=IntegrationType.GITHUB,
                name=full_name,
                status=IntegrationStatus.ACTIVE,
                metadata={
                    "repo": full_name,
                    "branch": branch or "main",
                    "features": [],
                    "github_app_id": self.app.app_id,
                    "installation_id": access.installation_id,
                    "last_access_check": utc_now_iso(),
                },
            )
        )
        if response.error is not None:
            raise GitHubIntegrationError(response.error.error, status_code=response.error.status_code)
        return response.result, True

    async def disable_repository(self, owner: str, repo: str) -> IntegrationRead:
        existing = await self.find_repository_integration(f"{owner}/{repo}")
        if existing is None:
            raise IntegrationNotFoundError("Integration not found")
        response = await self.manager.delete_integration(existing)
        if response.error is not None:
            raise GitHubIntegrationError(response.error.error, status_code=response.error.status_code)
        return response.result

    async def handle_installation_callback(
        self, installation_id: Optional[int], setup_action: Optional[str]
    ) -> GitHubInstallationRead:
        """Record an installation the tenant just made. This is the only path that creates installation rows."""
        if setup_action not in CALLBACK_SETUP_ACTIONS:
            raise InstallationCallbackError("setup_cancelled")
        if not installation_id:
            raise InstallationCallbackError("no_installation_id")
        if self.app is None or self.client is None:
            raise InstallationCallbackError("app_not_found")

        installation = await self.client.find_installation(installation_id)
        if installation is None:
            raise InstallationCallbackError("installation_not_found")

        repos = await self.client.fetch_installation_repositories(installation_id)
        if isinstance(repos, InstallationFetchError):
            raise InstallationCallbackError(repos.error)

        return await upsert_installation_container(
            installation, installation_id, repos, self.installation_store, flow_name="installation_callback"
        )

    async def delete_installation(self, installation_db_id: int, uninstall: bool = False) -> int:
        """Remove an installation row and its integrations. Returns the number of integrations deleted."""
        installation = next(
            (i for i in await self.installation_store.list_installations() if i.id == installation_db_id),
            None,
        )
        if installation is None:
            raise InstallationNotFoundError("Installation not found")

        deleted = 0
        for integration in integrations_for_installation(installation, await self.manager.list_integrations()):
            response = await self.manager.delete_integration(integration)
            if response.error is not None:
                logger.warning(
                    f"Integration {integration.id} not deleted with its installation: {response.error.error}"
                )
                continue
            deleted += 1

        await self.installation_store.delete_installation(installation.id)
        logger.info(
            "github_installation_deleted",
            extra={"installation_id": installation.installation_id, "deleted_integrations": deleted},
        )

        if uninstall and self.client is not None:
            if not await self.client.delete_installation(installation.installation_id):
                logger.warning(f"Failed to uninstall GitHub App installation {installation.installation_id}")
        return deleted

    async def _cleanup_before_listing(self) -> None:
        try:
            await self.cleanup_orphaned_integrations()
        except Exception:
            logger.exception("Orphaned integration cleanup failed")

    async def list_installation_overviews(self) -> List[InstallationOverview]:
        await self._cleanup_before_listing()
        integrations = await self.manager.list_integrations()
        overviews = []
        for installation in await self.installation_store.list_installations():
            matched = integrations_for_installation(installation, integrations)
            overviews.append(
                InstallationOverview(
                    id=installation.id,
                    name=installation.name,
                    container_type=installation.container_type,
                    installation_id=installation.installation_id,
                    total_repos=len(installation.repos),
                    enabled_repos=sum(1 for i in matched if i.status == IntegrationStatus.ACTIVE),
                    needs_attention=sum(1 for i in matched if i.status in ATTENTION_STATUSES),
                )
            )
        return overviews

    async def get_summary(self) -> GitHubSummaryResponse:
        overviews = await self.list_installation_overviews()
        return GitHubSummaryResponse(
            app_configured=self.app is not None,
            org_count=sum(1 for o in overviews if o.container_type.value == "org"),
            user_count=sum(1 for o in overviews if o.container_type.value == "user"),
            total_repos=sum(o.total_repos for o in overviews),
            enabled_repos=sum(o.enabled_repos for o in overviews),
            needs_attention=sum(o.needs_attention for o in overviews),
        )


@lru_cache(maxsize=1)
def _shared_in_memory_client() -> InMemoryGitHubAppClient:
    return InMemoryGitHubAppClient(get_settings().get_github_app())


def build_github_app_client(settings: Settings) -> Optional[BaseGitHubAppClient]:
    if settings.github_connector == "in_memory":
        return _shared_in_memory_client()
    app = settings.get_github_app()
    if app is None:
        return None
    return GitHubAppClient(app, base_url=settings.github_api_url, timeout=settings.github_http_timeout_seconds)


def build_github_integration_service(
    session_factory: async_sessionmaker[AsyncSession], settings: Optional[Settings] = None
) -> GitHubIntegrationService:
    settings = settings or get_settings()
    client = build_github_app_client(settings)
    app = client.app if client is not None else None
    installation_store = GitHubInstallationStore(session_factory)
    manager = build_integrations_manager(SQLAlchemyIntegrationStore(session_factory), app, client, installation_store)
    return GitHubIntegrationService(manager, installation_store, app, client)
