"""Pydantic schemas for GitHub App installations and their local mirror."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.github_installation import ContainerType


class GitHubApp(BaseModel):
    """The GitHub App a reconciliation pass runs against."""

    app_id: int
    private_key: str = Field(repr=False)
    slug: str = ""
    name: str = ""


# Remote payloads (subset of the GitHub REST API shapes)


class GitHubAccount(BaseModel):
    id: Optional[int] = None
    login: str
    type: str = "User"  # "User" or "Organization"


class GitHubAppInstallation(BaseModel):
    id: int
    app_id: Optional[int] = None
    account: GitHubAccount
    target_type: Optional[str] = None

    @property
    def container_type(self) -> ContainerType:
        kind = self.target_type or self.account.type
        return ContainerType.ORG if kind == "Organization" else ContainerType.USER


class GitHubAppRepository(BaseModel):
    full_name: str
    default_branch: Optional[str] = None


class RepositoryAccess(BaseModel):
    has_access: bool
    installation_id: Optional[int] = None


class InstallationFetchError(BaseModel):
    """Tagged failure returned on the onboarding path."""

    error: str  # failed_to_get_access_token | failed_to_fetch_repositories


# Local mirror


class NewGitHubInstallation(BaseModel):
    name: str
    container_type: ContainerType
    installation_id: int
    repos: List[str] = Field(default_factory=list)


class GitHubInstallationRead(BaseModel):
    id: int
    name: str
    container_type: ContainerType
    installation_id: int
    repos: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# API responses


class InstallationSyncResponse(BaseModel):
    message: str
    synced_installations: int = 0
    deleted_integrations: int = 0
    healed_count: int = 0


class InstallationOverview(BaseModel):
    id: int
    name: str
    container_type: ContainerType
    installation_id: int
    total_repos: int
    enabled_repos: int
    needs_attention: int


class GitHubSummaryResponse(BaseModel):
    app_configured: bool
    org_count: int
    user_count: int
    total_repos: int
    enabled_repos: int
    needs_attention: int


class EnableRepositoryRequest(BaseModel):
    branch: Optional[str] = None


class DeleteInstallationResponse(BaseModel):
    success: bool = True
    deleted_integrations: int = 0
