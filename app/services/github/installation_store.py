"""Persistence for a tenant's GitHub App installations."""

import logging
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.github_installation import GitHubInstallation
from app.schemas.github import GitHubInstallationRead, NewGitHubInstallation

logger = logging.getLogger(__name__)


class InstallationStore(Protocol):
    async def list_installations(self) -> List[GitHubInstallationRead]: ...

    async def lookup_by_name(self, name: str) -> Optional[GitHubInstallationRead]: ...

    async def lookup_by_installation_id(self, installation_id: int) -> Optional[GitHubInstallationRead]: ...

    async def create_installation(self, installation: NewGitHubInstallation) -> GitHubInstallationRead: ...

    async def update_installation(self, installation: GitHubInstallationRead) -> GitHubInstallationRead: ...

    async def delete_installation(self, installation_db_id: int) -> bool: ...


class GitHubInstallationStore:
    """SQLAlchemy-backed installation store. Each call runs in its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_installations(self) -> List[GitHubInstallationRead]:
        async with self.session_factory() as db:
            result = await db.execute(select(GitHubInstallation).order_by(GitHubInstallation.id))
            return [GitHubInstallationRead.model_validate(row) for row in result.scalars().all()]

    async def lookup_by_name(self, name: str) -> Optional[GitHubInstallationRead]:
        async with self.session_factory() as db:
            result = await db.execute(select(GitHubInstallation).where(GitHubInstallation.name == name))
            row = result.scalar_one_or_none()
            return GitHubInstallationRead.model_validate(row) if row else None

    async def lookup_by_installation_id(self, installation_id: int) -> Optional[GitHubInstallationRead]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(GitHubInstallation).where(GitHubInstallation.installation_id == installation_id)
            )
            row = result.scalar_one_or_none()
            return GitHubInstallationRead.model_validate(row) if row else None

    async def create_installation(self, installation: NewGitHubInstallation) -> GitHubInstallationRead:
        async with self.session_factory() as db:
            row = GitHubInstallation(
                name=installation.name,
                container_type=installation.container_type.value,
                installation_id=installation.installation_id,
                repos=list(installation.repos),
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            logger.info(
                "github_installation_created",
                extra={"installation_name": row.name, "installation_id": row.installation_id},
            )
            return GitHubInstallationRead.model_validate(row)

    async def update_installation(self, installation: GitHubInstallationRead) -> GitHubInstallationRead:
        """Write container type, remote id and repos. ``id`` and ``created_at`` are never touched."""
        async with self.session_factory() as db:
            row = await db.get(GitHubInstallation, installation.id)
            if row is None:
                raise LookupError(f"GitHub installation {installation.id} not found")
            row.name = installation.name
            row.container_type = installation.container_type.value
            row.installation_id = installation.installation_id
            row.repos = list(installation.repos)
            await db.commit()
            await db.refresh(row)
            return GitHubInstallationRead.model_validate(row)

    async def delete_installation(self, installation_db_id: int) -> bool:
        async with self.session_factory() as db:
            row = await db.get(GitHubInstallation, installation_db_id)
            if row is None:
                return False
            await db.delete(row)
            await db.commit()
            return True
