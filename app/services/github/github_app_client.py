"""GitHub App REST client used by installation reconciliation."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import httpx
from jose import jwt
from jose.exceptions import JOSEError
from pydantic import ValidationError

from app.schemas.github import (
    GitHubApp,
    GitHubAppInstallation,
    GitHubAppRepository,
    InstallationFetchError,
    RepositoryAccess,
)

logger = logging.getLogger(__name__)

FAILED_TO_GET_ACCESS_TOKEN = "failed_to_get_access_token"
FAILED_TO_FETCH_REPOSITORIES = "failed_to_fetch_repositories"


def create_app_jwt(app_id: int, private_key: str, now: Optional[int] = None) -> str:
    """Short-lived RS256 JWT identifying the App itself. Valid for roughly two minutes."""
    now = int(time.time()) if now is None else now
    payload = {
        "iat": now - 60,
        "exp": now + 60,
        "iss": str(app_id),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


class BaseGitHubAppClient(ABC):
    """Operations shared by every GitHub App client.

    Subclasses provide the primitives (token minting, listing, deletion). None of
    the public methods raise: every failure is logged and reported as ``None``
    or ``False``.
    """

    def __init__(self, app: GitHubApp):
        self.app = app

    @abstractmethod
    async def mint_installation_token(self, installation_id: int) -> Optional[str]:
        ...

    @abstractmethod
    async def list_installations(self) -> Optional[List[GitHubAppInstallation]]:
        ...

    @abstractmethod
    async def list_repositories_for_token(self, token: str) -> Optional[List[GitHubAppRepository]]:
        ...

    @abstractmethod
    async def delete_installation(self, installation_id: int) -> bool:
        ...

    async def find_installation(self, installation_id: int) -> Optional[GitHubAppInstallation]:
        installations = await self.list_installations()
        if installations is None:
            return None
        for installation in installations:
            if installation.id == installation_id:
                return installation
        return None

    async def find_installation_for_owner(self, owner: str) -> Optional[GitHubAppInstallation]:
        installations = await self.list_installations()
        if installations is None:
            return None
        owner = owner.lower()
        for installation in installations:
            if installation.account.login.lower() == owner:
                return installation
        return None

    async def list_repositories(self, installation_id: int) -> Optional[List[GitHubAppRepository]]:
        token = await self.mint_installation_token(installation_id)
        if token is None:
            return None
        return await self.list_repositories_for_token(token)

    async def fetch_installation_repositories(
        self, installation_id: int
    ) -> Union[List[str], InstallationFetchError]:
        """Repository full names for an installation, or a tagged error for the onboarding flow."""
        token = await self.mint_installation_token(installation_id)
        if token is None:
            return InstallationFetchError(error=FAILED_TO_GET_ACCESS_TOKEN)
        repositories = await self.list_repositories_for_token(token)
        if repositories is None:
            return InstallationFetchError(error=FAILED_TO_FETCH_REPOSITORIES)
        return [repository.full_name for repository in repositories]

    async def check_repository_access(self, repo_full_name: str) -> Optional[RepositoryAccess]:
        """Find the installation that exposes a repository.

        Returns None when installations cannot be listed at all, so callers can tell
        "no access" apart from "could not ask".
        """
        installations = await self.list_installations()
        if installations is None:
            return None
        wanted = repo_full_name.lower()
        for installation in installations:
            repositories = await self.list_repositories(installation.id)
            if not repositories:
                continue
            if any(repository.full_name.lower() == wanted for repository in repositories):
                return RepositoryAccess(has_access=True, installation_id=installation.id)
        return RepositoryAccess(has_access=False)


class GitHubAppClient(BaseGitHubAppClient):
    """Client for the GitHub REST API authenticated as a GitHub App.

    Base URL: https://api.github.com
    """

    BASE_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"
    PER_PAGE = 100

    def __init__(
        self,
        app: GitHubApp,
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(app)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def mint_app_token(self) -> str:
        return create_app_jwt(self.app.app_id, self.app.private_key)

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
        }

    def _app_headers(self) -> Optional[Dict[str, str]]:
        try:
            return self._headers(self.mint_app_token())
        except (JOSEError, ValueError) as exc:
            logger.error(f"Failed to sign GitHub App JWT for app {self.app.app_id}: {exc}")
            return None

    async def _request(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None,
    ) -> Optional[httpx.Response]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                return await client.request(method, path, headers=headers, params=params)
        except httpx.HTTPError as exc:
            logger.warning(f"GitHub request {method} {path} failed: {exc}")
            return None

    async def _get_pages(
        self, path: str, headers: Dict[str, str], key: Optional[str] = None
    ) -> Optional[List[Dict[str, Any]]]:
        """Collect every page of a list endpoint. ``key`` selects the list inside an object body."""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET", path, headers, params={"per_page": self.PER_PAGE, "page": page}
            )
            if response is None:
                return None
            if not response.is_success:
                logger.warning(f"GitHub GET {path} returned {response.status_code}")
                return None
            try:
                body = response.json()
            except ValueError:
                logger.warning(f"GitHub GET {path} returned a non-JSON body")
                return None
            batch = body.get(key) if key and isinstance(body, dict) else body
            if not isinstance(batch, list):
                logger.warning(f"GitHub GET {path} returned an unexpected payload")
                return None
            items.extend(batch)
            if len(batch) < self.PER_PAGE:
                return items
            page += 1

    async def mint_installation_token(self, installation_id: int) -> Optional[str]:
        headers = self._app_headers()
        if headers is None:
            return None
        path = f"/app/installations/{installation_id}/access_tokens"
        response = await self._request("POST", path, headers)
        if response is None:
            return None
        if not response.is_success:
            logger.warning(
                f"Failed to mint token for installation {installation_id}: HTTP {response.status_code}"
            )
            return None
        try:
            body = response.json()
        except ValueError:
            body = None
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            logger.warning(f"Token response for installation {installation_id} had no token")
            return None
        return token

    async def list_installations(self) -> Optional[List[GitHubAppInstallation]]:
        headers = self._app_headers()
        if headers is None:
            return None
        items = await self._get_pages("/app/installations", headers)
        if items is None:
            return None
        try:
            return [GitHubAppInstallation.model_validate(item) for item in items]
        except ValidationError as exc:
            logger.warning(f"Unexpected installation payload from GitHub: {exc}")
            return None

    async def list_repositories_for_token(self, token: str) -> Optional[List[GitHubAppRepository]]:
        items = await self._get_pages("/installation/repositories", self._headers(token), key="repositories")
        if items is None:
            return None
        try:
            return [GitHubAppRepository.model_validate(item) for item in items]
        except ValidationError as exc:
            logger.warning(f"Unexpected repository payload from GitHub: {exc}")
            return None

    async def find_installation(self, installation_id: int) -> Optional[GitHubAppInstallation]:
        headers = self._app_headers()
        if headers is None:
            return None
        response = await self._request("GET", f"/app/installations/{installation_id}", headers)
        if response is None or not response.is_success:
            return None
        try:
            return GitHubAppInstallation.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning(f"Unexpected payload for installation {installation_id}")
            return None

    async def delete_installation(self, installation_id: int) -> bool:
        """Uninstall the App from an account. An already-missing installation counts as deleted."""
        headers = self._app_headers()
        if headers is None:
            return False
        response = await self._request("DELETE", f"/app/installations/{installation_id}", headers)
        if response is None:
            return False
        if response.is_success or response.status_code == 404:
            return True
        logger.warning(
            f"Failed to delete installation {installation_id}: HTTP {response.status_code}"
        )
        return False
