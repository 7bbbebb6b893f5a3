import logging
import re
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import get_settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def get_async_database_url(url: str) -> str:
    """Convert database URL to async-compatible format using psycopg driver."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)

    if "channel_binding=" in url:
        url = re.sub(r'[&?]channel_binding=[^&]*', '', url)
        url = url.replace('?&', '?').rstrip('?')

    return url


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    database_url = get_async_database_url(url)

    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, future=True, echo=echo)

    connect_args = {}
    if "postgresql" in database_url:
        connect_args = {
            "connect_timeout": 10,
        }
    logger.info("Creating database engine", extra={"database": database_url.split("@")[-1]})
    return create_async_engine(
        database_url,
        future=True,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,   # Recycle connections after 1 hour
        pool_timeout=10,     # Wait up to 10 seconds for a connection from pool
        max_overflow=10,     # Allow extra connections beyond pool_size
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session on the default tenant's database."""
    from app.core.tenancy import get_tenant_registry

    tenant = get_tenant_registry().get(get_settings().default_tenant)
    async with tenant.session_factory() as session:
        yield session


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database() -> None:
    """Create all tables for every tenant. In production use Alembic migrations instead.

    Best effort: a tenant whose create_all fails is logged and skipped, its schema
    is expected to come from migrations.
    """
    from app.core.tenancy import get_tenant_registry

    for tenant in get_tenant_registry().tenants():
        try:
            await create_tables(tenant.engine)
            logger.info("Database tables initialized", extra={"tenant": tenant.slug})
        except Exception as exc:
            logger.warning(
                "create_all failed, continuing with existing schema",
                extra={"tenant": tenant.slug, "error": str(exc)},
            )
