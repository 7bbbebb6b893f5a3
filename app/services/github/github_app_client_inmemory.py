"""In-memory GitHub App client for local development and deterministic tests."""

from typing import Dict, List, Optional, Set, Tuple

from app.schemas.github import (
    GitHubAccount,
    GitHubApp,
    GitHubAppInstallation,
    GitHubAppRepository,
)
from app.services.github.github_app_client import BaseGitHubAppClient


class InMemoryGitHubAppClient(BaseGitHubAppClient):
    """Holds installations and their repositories in dictionaries.

    Failure switches mimic the remote API refusing a call: ``fail_list_installations``,
    installation ids in ``token_failures`` or ``repository_failures``.
    """

    def __init__(self, app: Optional[GitHubApp] = None):
        super().__init__(app or GitHubApp(app_id=1, private_key="", slug="in-memory", name="In Memory"))
        self.installations: Dict[int, GitHubAppInstallation] = {}
        self.repositories: Dict[int, List[str]] = {}
        self.fail_list_installations = False
        self.token_failures: Set[int] = set()
        self.repository_failures: Set[int] = set()
        self.deleted_installations: List[int] = []
        self.calls: List[Tuple[str, object]] = []

    def add_installation(
        self,
        installation_id: int,
        login: str,
        account_type: str = "Organization",
        repos: Optional[List[str]] = None,
        target_type: Optional[str] = None,
    ) -> GitHubAppInstallation:
        installation = GitHubAppInstallation(
            id=installation_id,
            app_id=self.app.app_id,
            account=GitHubAccount(login=login, type=account_type),
            target_type=target_type,
        )
        self.installations[installation_id] = installation
        self.repositories[installation_id] = list(repos or [])
        return installation

    def remove_installation(self, installation_id: int) -> None:
        self.installations.pop(installation_id, None)
        self.repositories.pop(installation_id, None)

    async def mint_installation_token(self, installation_id: int) -> Optional[str]:
        self.calls.append(("mint_installation_token", installation_id))
        if installation_id in self.token_failures or installation_id not in self.installations:
            return None
        return f"inmemory-token-{installation_id}"

    async def list_installations(self) -> Optional[List[GitHubAppInstallation]]:
        self.calls.append(("list_installations", None))
        if self.fail_list_installations:
            return None
        return list(self.installations.values())

    async def list_repositories_for_token(self, token: str) -> Optional[List[GitHubAppRepository]]:
        self.calls.append(("list_repositories_for_token", token))
        installation_id = int(token.rsplit("-", 1)[-1])
        if installation_id in self.repository_failures or installation_id not in self.installations:
            return None
        return [
            GitHubAppRepository(full_name=name, default_branch="main")
            for name in self.repositories.get(installation_id, [])
        ]

    async def delete_installation(self, installation_id: int) -> bool:
        self.calls.append(("delete_installation", installation_id))
        self.deleted_installations.append(installation_id)
        self.remove_installation(installation_id)
        return True
