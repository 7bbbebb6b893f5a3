"""Integration lifecycle: hook registry, type behaviors and the orchestrator."""

from typing import Optional

from app.models.integration import IntegrationType
from app.schemas.github import GitHubApp
from app.services.github.github_app_client import BaseGitHubAppClient
from app.services.github.installation_store import InstallationStore
from app.services.integration_store import IntegrationStore
from app.services.integrations.github_behavior import build_github_behavior
from app.services.integrations.manager import IntegrationsManager
from app.services.integrations.registry import IntegrationTypeRegistry, UnknownIntegrationTypeError
from app.services.integrations.static_file_behavior import (
    build_static_file_behavior,
    build_unknown_behavior,
)
from app.services.integrations.types import (
    HookFailed,
    HookOk,
    IntegrationContext,
    IntegrationTypeBehavior,
)


def build_integration_registry(
    app: Optional[GitHubApp] = None,
    client: Optional[BaseGitHubAppClient] = None,
    installation_store: Optional[InstallationStore] = None,
) -> IntegrationTypeRegistry:
    registry = IntegrationTypeRegistry()
    registry.register(IntegrationType.GITHUB, build_github_behavior(app, client, installation_store))
    registry.register(IntegrationType.STATIC_FILE, build_static_file_behavior())
    registry.register(IntegrationType.UNKNOWN, build_unknown_behavior())
    return registry


def build_integrations_manager(
    store: IntegrationStore,
    app: Optional[GitHubApp] = None,
    client: Optional[BaseGitHubAppClient] = None,
    installation_store: Optional[InstallationStore] = None,
) -> IntegrationsManager:
    return IntegrationsManager(store, build_integration_registry(app, client, installation_store))


__all__ = [
    "HookFailed",
    "HookOk",
    "IntegrationContext",
    "IntegrationTypeBehavior",
    "IntegrationTypeRegistry",
    "IntegrationsManager",
    "UnknownIntegrationTypeError",
    "build_integration_registry",
    "build_integrations_manager",
]
