"""Router for GitHub App installations and repository integrations."""

import logging
from typing import List, Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import RedirectResponse

from app.api import deps
from app.core.config import get_settings
from app.schemas.github import (
    DeleteInstallationResponse,
    EnableRepositoryRequest,
    GitHubSummaryResponse,
    InstallationOverview,
    InstallationSyncResponse,
)
from app.schemas.integration import IntegrationRead
from app.services.github.exceptions import GitHubIntegrationError, InstallationCallbackError
from app.services.github.github_integration_service import GitHubIntegrationService

logger = logging.getLogger(__name__)

router = APIRouter()


def _raise_http(exc: GitHubIntegrationError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=exc.message)


@router.get("/summary", response_model=GitHubSummaryResponse)
async def get_github_summary(
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> GitHubSummaryResponse:
    return await service.get_summary()


@router.get("/installations", response_model=List[InstallationOverview])
async def list_installations(
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> List[InstallationOverview]:
    return await service.list_installation_overviews()


@router.post("/installations/sync", response_model=InstallationSyncResponse)
async def sync_installations(
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> InstallationSyncResponse:
    """Refresh installations, drop orphaned integrations and heal access errors. Always answers 200."""
    return await service.sync_installations()


@router.get("/installation/callback")
async def installation_callback(
    installation_id: Optional[int] = None,
    setup_action: Optional[str] = None,
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> RedirectResponse:
    """Landing point after a user installs the App on GitHub."""
    origin = get_settings().origin.rstrip("/")
    try:
        installation = await service.handle_installation_callback(installation_id, setup_action)
    except InstallationCallbackError as exc:
        logger.info("github_installation_callback_failed", extra={"code": exc.code, "installation_id": installation_id})
        return RedirectResponse(f"{origin}/integrations/github?{urlencode({'error': exc.code})}")
    except Exception:
        logger.exception("GitHub installation callback failed", extra={"installation_id": installation_id})
        return RedirectResponse(f"{origin}/integrations/github?{urlencode({'error': 'installation_failed'})}")

    return RedirectResponse(
        f"{origin}/integrations/github/{installation.container_type.value}/"
        f"{quote(installation.name)}?new_installation=true"
    )


@router.delete("/installations/{installation_db_id}", response_model=DeleteInstallationResponse)
async def delete_installation(
    installation_db_id: int,
    uninstall: bool = False,
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> DeleteInstallationResponse:
    try:
        deleted = await service.delete_installation(installation_db_id, uninstall=uninstall)
    except GitHubIntegrationError as exc:
        _raise_http(exc)
    return DeleteInstallationResponse(success=True, deleted_integrations=deleted)


@router.post("/repos/{owner}/{repo}", response_model=IntegrationRead)
async def enable_repository(
    owner: str,
    repo: str,
    response: Response,
    payload: Optional[EnableRepositoryRequest] = None,
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> IntegrationRead:
    branch = payload.branch if payload else None
    try:
        integration, created = await service.enable_repository(owner, repo, branch=branch)
    except GitHubIntegrationError as exc:
        _raise_http(exc)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return integration


@router.delete("/repos/{owner}/{repo}", response_model=IntegrationRead)
async def disable_repository(
    owner: str,
    repo: str,
    service: GitHubIntegrationService = Depends(deps.get_github_service),
) -> IntegrationRead:
    try:
        return await service.disable_repository(owner, repo)
    except GitHubIntegrationError as exc:
        _raise_http(exc)
