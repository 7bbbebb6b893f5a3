"""SQLAlchemy models for the integration catalog."""

from app.models.github_installation import GitHubInstallation  # noqa: F401
from app.models.integration import Integration  # noqa: F401
