"""Exceptions raised by GitHub integration services."""

from typing import Optional

INSTALLATION_NOT_CONNECTED = "This GitHub installation is not connected to your organization"


class GitHubIntegrationError(Exception):
    """Base exception for GitHub integration operations. Carries the HTTP status to answer with."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class GitHubAppNotConfiguredError(GitHubIntegrationError):
    status_code = 503


class InstallationNotConnectedError(GitHubIntegrationError):
    """The installation exists remotely but belongs to another tenant (or none)."""

    status_code = 403

    def __init__(self, installation_id: int):
        super().__init__(INSTALLATION_NOT_CONNECTED)
        self.installation_id = installation_id


class RepositoryNotInstalledError(GitHubIntegrationError):
    status_code = 404

    def __init__(self, repo_full_name: str):
        super().__init__("Repository not found in any GitHub App installation")
        self.repo_full_name = repo_full_name


class IntegrationNotFoundError(GitHubIntegrationError):
    status_code = 404


class InstallationNotFoundError(GitHubIntegrationError):
    status_code = 404


class InstallationCallbackError(GitHubIntegrationError):
    """Onboarding failure. ``code`` is the tag passed back to the frontend."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code
