"""Background sync job for GitHub App installations."""

import logging
from typing import Dict, Optional

from app.core.config import Settings, get_settings
from app.core.tenancy import Tenant, TenantRegistry, get_tenant_registry
from app.schemas.github import InstallationSyncResponse
from app.services.github.github_integration_service import build_github_integration_service

logger = logging.getLogger(__name__)


async def sync_github_installations_for_tenant(
    tenant: Tenant, settings: Optional[Settings] = None
) -> InstallationSyncResponse:
    """Run one sync, cleanup and healing pass against a single tenant's database."""
    service = build_github_integration_service(tenant.session_factory, settings)
    result = await service.sync_installations()
    logger.info(
        "github_tenant_sync",
        extra={
            "tenant": tenant.slug,
            "synced_installations": result.synced_installations,
            "deleted_integrations": result.deleted_integrations,
            "healed_count": result.healed_count,
        },
    )
    return result


async def sync_github_installations_for_all_tenants(
    registry: Optional[TenantRegistry] = None, settings: Optional[Settings] = None
) -> Dict[str, InstallationSyncResponse]:
    """Sync every tenant in turn. A failing tenant is logged and does not stop the others."""
    settings = settings or get_settings()
    if settings.github_connector != "in_memory" and settings.get_github_app() is None:
        logger.info("github_sync_job_skipped", extra={"reason": "app_not_configured"})
        return {}

    registry = registry or get_tenant_registry()
    results: Dict[str, InstallationSyncResponse] = {}
    for tenant in registry.tenants():
        try:
            results[tenant.slug] = await sync_github_installations_for_tenant(tenant, settings)
        except Exception as e:
            logger.error(f"Error syncing GitHub installations for tenant {tenant.slug}: {e}", exc_info=True)
    return results
