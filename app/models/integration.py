"""Integration catalog models."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, JSON, String, UniqueConstraint, func

from app.models.base import Base


class IntegrationType(str, Enum):
    GITHUB = "github"
    STATIC_FILE = "static_file"
    UNKNOWN = "unknown"


class IntegrationStatus(str, Enum):
    ACTIVE = "active"
    NEEDS_REPO_ACCESS = "needs_repo_access"
    ERROR = "error"
    PENDING_INSTALLATION = "pending_installation"


class AccessErrorCode(str, Enum):
    """Values stored in a GitHub integration's ``access_error`` metadata key."""

    REPO_NOT_ACCESSIBLE_BY_APP = "repoNotAccessibleByApp"


class Integration(Base):
    """A workspace's connection to one external resource (e.g. a GitHub repository)."""

    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("type", "name", name="uq_integrations_type_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False, index=True)  # IntegrationType value
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default=IntegrationStatus.ACTIVE.value)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
