"""Router for integration records. Every write goes through the lifecycle orchestrator."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api import deps
from app.schemas.integration import (
    AccessCheckResponse,
    IntegrationListResponse,
    IntegrationRead,
    IntegrationResponse,
    IntegrationUpdate,
    NewIntegration,
)
from app.services.integrations.manager import IntegrationsManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _unwrap(response: IntegrationResponse) -> IntegrationRead:
    if response.error is not None:
        raise HTTPException(status_code=response.error.status_code, detail=response.error.error)
    return response.result


async def _get_or_404(manager: IntegrationsManager, integration_id: int) -> IntegrationRead:
    integration = await manager.get_integration(integration_id)
    if integration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
    return integration


@router.get("", response_model=IntegrationListResponse)
async def list_integrations(
    manager: IntegrationsManager = Depends(deps.get_integrations_manager),
) -> IntegrationListResponse:
    integrations = await manager.list_integrations()
    return IntegrationListResponse(integrations=integrations, total=len(integrations))


@router.get("/{integration_id}", response_model=IntegrationRead)
async def get_integration(
    integration_id: int,
    manager: IntegrationsManager = Depends(deps.get_integrations_manager),
) -> IntegrationRead:
    return await _get_or_404(manager, integration_id)


@router.post("", response_model=IntegrationRead, status_code=status.HTTP_201_CREATED)
async def create_integration(
    payload: NewIntegration,
    manager: IntegrationsManager = Depends(deps.get_integrations_manager),
) -> IntegrationRead:
    return _unwrap(await manager.create_integration(payload))


@router.patch("/{integration_id}", response_model=IntegrationRead)
async def update_integration(
    integration_id: int,
    payload: IntegrationUpdate,
    manager: IntegrationsManager = Depends(deps.get_integrations_manager),
) -> IntegrationRead:
    return _unwrap(await manager.update_integration(integration_id, payload))


@router.delete("/{integration_id}", response_model=IntegrationRead)
async def delete_integration(
    integration_id: int,
    manager: IntegrationsManager = Depends(deps.get_integrations_manager),
) -> IntegrationRead:
    integration = await _get_or_404(manager, integration_id)
    return _unwrap(await manager.delete_integration(integration))


@router.post("/{integration_id}/access-check", response_model=AccessCheckResponse)
async def check_integration_access(
    integration_id: int,
    manager: IntegrationsManager = Depends(deps.get_integrations_manager),
) -> AccessCheckResponse:
    integration = await _get_or_404(manager, integration_id)
    response = await manager.handle_access_check(integration)
    if response.error is not None and response.error.code == status.HTTP_404_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=response.error.reason)
    return response
