"""GitHub App installation services."""

from app.services.github.github_app_client import BaseGitHubAppClient, GitHubAppClient, create_app_jwt
from app.services.github.github_app_client_inmemory import InMemoryGitHubAppClient
from app.services.github.installation_store import GitHubInstallationStore

__all__ = [
    "BaseGitHubAppClient",
    "GitHubAppClient",
    "GitHubInstallationStore",
    "InMemoryGitHubAppClient",
    "create_app_jwt",
]
