"""
Tenant Resolution

Every tenant owns a separate database. The registry maps a tenant slug to the
engine and session factory for that database; nothing outside a tenant's
database is consulted when answering questions about its installations.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.core.db import create_engine_for_url, create_session_factory


class UnknownTenantError(Exception):
    """Raised when a request names a tenant that is not configured."""

    def __init__(self, slug: str):
        super().__init__(f"Unknown tenant: {slug}")
        self.slug = slug


@dataclass
class Tenant:
    slug: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]


class TenantRegistry:
    def __init__(self, database_urls: Dict[str, str], echo: bool = False):
        self._database_urls = dict(database_urls)
        self._echo = echo
        self._tenants: Dict[str, Tenant] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantRegistry":
        if settings.multi_tenant_enabled and settings.tenant_database_urls:
            urls = settings.tenant_database_urls
        else:
            urls = {settings.default_tenant: settings.database_url}
        return cls(urls, echo=settings.debug)

    def slugs(self) -> List[str]:
        return list(self._database_urls)

    def get(self, slug: str) -> Tenant:
        tenant = self._tenants.get(slug)
        if tenant is not None:
            return tenant
        url = self._database_urls.get(slug)
        if url is None:
            raise UnknownTenantError(slug)
        engine = create_engine_for_url(url, echo=self._echo)
        tenant = Tenant(slug=slug, engine=engine, session_factory=create_session_factory(engine))
        self._tenants[slug] = tenant
        return tenant

    def tenants(self) -> List[Tenant]:
        return [self.get(slug) for slug in self._database_urls]

    async def dispose(self) -> None:
        for tenant in self._tenants.values():
            await tenant.engine.dispose()
        self._tenants.clear()


@lru_cache(maxsize=1)
def get_tenant_registry() -> TenantRegistry:
    return TenantRegistry.from_settings(get_settings())


def resolve_tenant_slug(requested: Optional[str], settings: Optional[Settings] = None) -> str:
    """Pick the tenant for a request. Single-tenant deployments ignore the header."""
    settings = settings or get_settings()
    if not settings.multi_tenant_enabled:
        return settings.default_tenant
    return requested or settings.default_tenant
