import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from app.core.config import get_settings
from app.core.tenancy import Tenant, UnknownTenantError, get_tenant_registry, resolve_tenant_slug
from app.services.github.github_integration_service import (
    GitHubIntegrationService,
    build_github_integration_service,
)
from app.services.integrations.manager import IntegrationsManager

logger = logging.getLogger(__name__)


async def get_current_tenant(
    x_tenant_id: Optional[str] = Header(default=None),
) -> Tenant:
    """
    FastAPI dependency that resolves the tenant a request acts for.

    Multi-tenant deployments select the tenant with the X-Tenant-ID header;
    single-tenant deployments always use the default tenant.
    """
    slug = resolve_tenant_slug(x_tenant_id)
    try:
        return get_tenant_registry().get(slug)
    except UnknownTenantError:
        logger.warning("unknown_tenant", extra={"tenant": slug})
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown tenant",
        )


async def get_github_service(
    tenant: Tenant = Depends(get_current_tenant),
) -> GitHubIntegrationService:
    return build_github_integration_service(tenant.session_factory, get_settings())


async def get_integrations_manager(
    service: GitHubIntegrationService = Depends(get_github_service),
) -> IntegrationsManager:
    return service.manager
