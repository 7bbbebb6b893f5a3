"""Local mirror of GitHub App installations owned by a tenant."""

from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON, String, func

from app.models.base import Base


class ContainerType(str, Enum):
    ORG = "org"
    USER = "user"


class GitHubInstallation(Base):
    __tablename__ = "github_installations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)  # account login
    container_type = Column(String, nullable=False, default=ContainerType.USER.value)
    installation_id = Column(BigInteger, nullable=False, unique=True, index=True)
    repos = Column(JSON, nullable=False, default=list)  # full names, replaced on every sync
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
