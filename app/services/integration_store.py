"""Persistence for integration records."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.integration import Integration
from app.schemas.integration import IntegrationRead, NewIntegration

logger = logging.getLogger(__name__)


@dataclass
class UnitOfWork:
    """The open transaction handed to ``pre_update_transactional`` hooks."""

    session: AsyncSession


class IntegrationUpdateVetoedError(Exception):
    """Raised inside the update transaction when a hook refuses the write, rolling it back."""

    def __init__(self, integration_id: int):
        super().__init__(f"Update of integration {integration_id} vetoed")
        self.integration_id = integration_id


PreUpdateCallback = Callable[[IntegrationRead, UnitOfWork], Awaitable[bool]]


class IntegrationStore(Protocol):
    async def list_integrations(self) -> List[IntegrationRead]: ...

    async def get_integration(self, integration_id: int) -> Optional[IntegrationRead]: ...

    async def count_integrations(self) -> int: ...

    async def create_integration(self, integration: NewIntegration) -> IntegrationRead: ...

    async def update_integration(
        self,
        integration_id: int,
        changes: Dict[str, Any],
        pre_update: Optional[PreUpdateCallback] = None,
    ) -> Optional[IntegrationRead]: ...

    async def delete_integration(self, integration_id: int) -> bool: ...


def to_integration_read(row: Integration) -> IntegrationRead:
    return IntegrationRead(
        id=row.id,
        type=row.type,
        name=row.name,
        status=row.status,
        metadata=row.metadata_,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SQLAlchemyIntegrationStore:
    """Integration store on a tenant database. Each call runs in its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_integrations(self) -> List[IntegrationRead]:
        async with self.session_factory() as db:
            result = await db.execute(select(Integration).order_by(Integration.id))
            return [to_integration_read(row) for row in result.scalars().all()]

    async def get_integration(self, integration_id: int) -> Optional[IntegrationRead]:
        async with self.session_factory() as db:
            row = await db.get(Integration, integration_id)
            return to_integration_read(row) if row else None

    async def count_integrations(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(select(func.count()).select_from(Integration))
            return int(result.scalar_one())

    async def create_integration(self, integration: NewIntegration) -> IntegrationRead:
        async with self.session_factory() as db:
            row = Integration(
                type=integration.type.value,
                name=integration.name,
                status=integration.status.value,
                metadata_=integration.metadata,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return to_integration_read(row)

    async def update_integration(
        self,
        integration_id: int,
        changes: Dict[str, Any],
        pre_update: Optional[PreUpdateCallback] = None,
    ) -> Optional[IntegrationRead]:
        """Apply ``changes`` in one transaction.

        ``pre_update`` runs inside the transaction with the locked row; returning False
        rolls everything back and raises IntegrationUpdateVetoedError. Returns None when
        the row does not exist.
        """
        async with self.session_factory() as db:
            async with db.begin():
                row = await db.get(Integration, integration_id, with_for_update=True)
                if row is None:
                    return None
                if pre_update is not None:
                    allowed = await pre_update(to_integration_read(row), UnitOfWork(session=db))
                    if not allowed:
                        raise IntegrationUpdateVetoedError(integration_id)
                for field, value in changes.items():
                    if field == "metadata":
                        row.metadata_ = value
                    elif field in ("name", "status"):
                        setattr(row, field, value.value if hasattr(value, "value") else value)
                    else:
                        raise ValueError(f"Field {field!r} cannot be updated")
            await db.refresh(row)
            return to_integration_read(row)

    async def delete_integration(self, integration_id: int) -> bool:
        async with self.session_factory() as db:
            row = await db.get(Integration, integration_id)
            if row is None:
                return False
            await db.delete(row)
            await db.commit()
            return True
