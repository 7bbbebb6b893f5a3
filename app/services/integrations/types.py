"""Hook contract shared by every integration type."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Union

from app.schemas.integration import AccessCheckResponse, IntegrationRead, NewIntegration
from app.services.integration_store import UnitOfWork

if TYPE_CHECKING:
    from app.services.integrations.manager import IntegrationsManager


@dataclass
class IntegrationContext:
    """Passed to every hook so it can call back into the orchestrator."""

    manager: "IntegrationsManager"


@dataclass(frozen=True)
class HookOk:
    pass


@dataclass(frozen=True)
class HookFailed:
    reason: str


HookOutcome = Union[HookOk, HookFailed]

PreCreateHook = Callable[[NewIntegration, IntegrationContext], Awaitable[bool]]
GateHook = Callable[[IntegrationRead, IntegrationContext], Awaitable[bool]]
TransactionalGateHook = Callable[[IntegrationRead, IntegrationContext, UnitOfWork], Awaitable[bool]]
PostHook = Callable[[IntegrationRead, IntegrationContext], Awaitable[Optional[HookOutcome]]]
AccessCheckHook = Callable[[IntegrationRead, IntegrationContext], Awaitable[AccessCheckResponse]]


@dataclass
class IntegrationTypeBehavior:
    """Hooks one integration type plugs into the shared create/update/delete pipeline.

    Gating hooks return False to veto; a missing gating hook allows the operation.
    Post hooks run after the write and can only report a failure for logging.
    ``handle_access_check`` is required and must not raise.
    """

    handle_access_check: AccessCheckHook
    pre_create: Optional[PreCreateHook] = None
    pre_update_non_transactional: Optional[GateHook] = None
    pre_update_transactional: Optional[TransactionalGateHook] = None
    post_update: Optional[PostHook] = None
    pre_delete: Optional[GateHook] = None
    post_delete: Optional[PostHook] = None
