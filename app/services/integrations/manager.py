"""Integration lifecycle orchestrator.

Every write to the integration store goes through ``IntegrationsManager``, which
runs the hooks registered for the record's type around the write:

    create:  pre_create -> insert
    update:  pre_update_non_transactional -> [transaction: pre_update_transactional -> write] -> post_update
    delete:  pre_delete -> delete -> post_delete

Vetoes and missing rows are returned as ``IntegrationError`` results rather than
raised. Post hooks never change the outcome of the operation.
"""

import logging
from typing import List, Optional, Union

from app.models.integration import IntegrationType
from app.schemas.integration import (
    AccessCheckError,
    AccessCheckResponse,
    IntegrationError,
    IntegrationRead,
    IntegrationResponse,
    IntegrationUpdate,
    NewIntegration,
)
from app.services.integration_store import (
    IntegrationStore,
    IntegrationUpdateVetoedError,
    UnitOfWork,
)
from app.services.integrations.registry import IntegrationTypeRegistry
from app.services.integrations.types import (
    HookFailed,
    HookOutcome,
    IntegrationContext,
    IntegrationTypeBehavior,
    PostHook,
)

logger = logging.getLogger(__name__)

CREATE_NOT_ALLOWED = "create integration not allowed."
CREATE_FAILED = "Failed to create integration."
UPDATE_NOT_ALLOWED = "update integration not allowed."
UPDATE_FAILED = "Failed to update integration"
DELETE_NOT_ALLOWED = "delete integration not allowed."
DELETE_FAILED = "Failed to delete integration"
NOT_FOUND = "Integration not found"


def _error(status_code: int, message: str) -> IntegrationResponse:
    return IntegrationResponse(error=IntegrationError(status_code=status_code, error=message))


class IntegrationsManager:
    def __init__(self, store: IntegrationStore, registry: IntegrationTypeRegistry):
        registry.ensure_complete()
        self.store = store
        self.registry = registry
        self.context = IntegrationContext(manager=self)

    def get_integration_types(self) -> List[IntegrationType]:
        return self.registry.types()

    def get_integration_type_behavior(self, type_tag: Union[IntegrationType, str]) -> IntegrationTypeBehavior:
        return self.registry.get(type_tag)

    async def list_integrations(self) -> List[IntegrationRead]:
        return await self.store.list_integrations()

    async def get_integration(self, integration_id: int) -> Optional[IntegrationRead]:
        return await self.store.get_integration(integration_id)

    async def count_integrations(self) -> int:
        return await self.store.count_integrations()

    async def create_integration(self, integration: NewIntegration) -> IntegrationResponse:
        behavior = self.registry.get(integration.type)
        candidate = integration.model_copy(deep=True)

        if behavior.pre_create is not None and not await behavior.pre_create(candidate, self.context):
            logger.info(
                "integration_create_vetoed",
                extra={"integration_type": candidate.type.value, "integration_name": candidate.name},
            )
            return _error(403, CREATE_NOT_ALLOWED)

        try:
            created = await self.store.create_integration(candidate)
        except Exception:
            logger.exception(
                "Failed to create integration",
                extra={"integration_type": candidate.type.value, "integration_name": candidate.name},
            )
            return _error(400, CREATE_FAILED)

        logger.info(
            "integration_created",
            extra={"integration_id": created.id, "integration_type": created.type.value},
        )
        return IntegrationResponse(result=created)

    async def update_integration(self, integration_id: int, patch: IntegrationUpdate) -> IntegrationResponse:
        existing = await self.store.get_integration(integration_id)
        if existing is None:
            logger.info("integration_update_not_found", extra={"integration_id": integration_id})
            return _error(404, NOT_FOUND)

        behavior = self.registry.get(existing.type)
        if (
            behavior.pre_update_non_transactional is not None
            and not await behavior.pre_update_non_transactional(existing, self.context)
        ):
            logger.info("integration_update_vetoed", extra={"integration_id": integration_id})
            return _error(403, UPDATE_NOT_ALLOWED)

        transactional_hook = behavior.pre_update_transactional

        async def run_transactional_hook(current: IntegrationRead, uow: UnitOfWork) -> bool:
            return await transactional_hook(current, self.context, uow)

        try:
            updated = await self.store.update_integration(
                integration_id,
                patch.model_dump(exclude_unset=True),
                pre_update=run_transactional_hook if transactional_hook is not None else None,
            )
        except IntegrationUpdateVetoedError:
            logger.info(
                "integration_update_vetoed",
                extra={"integration_id": integration_id, "transactional": True},
            )
            return _error(403, UPDATE_NOT_ALLOWED)
        except Exception:
            logger.exception("Failed to update integration", extra={"integration_id": integration_id})
            return _error(400, UPDATE_FAILED)

        if updated is None:
            # Deleted between the initial read and the transaction
            return _error(404, NOT_FOUND)

        await self._run_post_hook("post_update", behavior.post_update, updated)
        return IntegrationResponse(result=updated)

    async def delete_integration(self, integration: IntegrationRead) -> IntegrationResponse:
        existing = await self.store.get_integration(integration.id)
        if existing is None:
            logger.info("integration_delete_not_found", extra={"integration_id": integration.id})
            return _error(404, NOT_FOUND)

        behavior = self.registry.get(existing.type)
        if behavior.pre_delete is not None and not await behavior.pre_delete(existing, self.context):
            logger.info("integration_delete_vetoed", extra={"integration_id": existing.id})
            return _error(403, DELETE_NOT_ALLOWED)

        try:
            deleted = await self.store.delete_integration(existing.id)
        except Exception:
            logger.exception("Failed to delete integration", extra={"integration_id": existing.id})
            return _error(400, DELETE_FAILED)
        if not deleted:
            return _error(404, NOT_FOUND)

        logger.info(
            "integration_deleted",
            extra={"integration_id": existing.id, "integration_type": existing.type.value},
        )
        await self._run_post_hook("post_delete", behavior.post_delete, existing)
        return IntegrationResponse(result=existing)

    async def handle_access_check(self, integration: IntegrationRead) -> AccessCheckResponse:
        existing = await self.store.get_integration(integration.id)
        if existing is None:
            return AccessCheckResponse(error=AccessCheckError(code=404, reason=NOT_FOUND))
        behavior = self.registry.get(existing.type)
        return await behavior.handle_access_check(existing, self.context)

    async def _run_post_hook(
        self, name: str, hook: Optional[PostHook], integration: IntegrationRead
    ) -> Optional[HookOutcome]:
        if hook is None:
            return None
        try:
            outcome = await hook(integration, self.context)
        except Exception as exc:
            outcome = HookFailed(reason=str(exc) or type(exc).__name__)
        if isinstance(outcome, HookFailed):
            logger.warning(
                f"{name} hook failed for integration {integration.id}: {outcome.reason}",
                extra={"integration_id": integration.id, "hook": name},
            )
        return outcome
