import logging
from typing import Dict, List, Union

from app.models.integration import IntegrationType
from app.services.integrations.types import IntegrationTypeBehavior

logger = logging.getLogger(__name__)


class UnknownIntegrationTypeError(Exception):
    """Raised for integration type tags outside the known set or without a registered behavior."""

    def __init__(self, type_tag: object):
        super().__init__("unknown integration type!")
        self.type_tag = type_tag


class IntegrationTypeRegistry:
    """Maps each integration type to its behavior. Validation happens at registration."""

    def __init__(self):
        self._behaviors: Dict[IntegrationType, IntegrationTypeBehavior] = {}

    @staticmethod
    def _coerce(type_tag: Union[IntegrationType, str]) -> IntegrationType:
        try:
            return IntegrationType(type_tag)
        except ValueError:
            raise UnknownIntegrationTypeError(type_tag) from None

    def register(self, type_tag: Union[IntegrationType, str], behavior: IntegrationTypeBehavior) -> None:
        integration_type = self._coerce(type_tag)
        if not callable(getattr(behavior, "handle_access_check", None)):
            raise ValueError(f"Behavior for {integration_type.value} must implement handle_access_check")
        if integration_type in self._behaviors:
            logger.info(f"Replacing behavior for integration type {integration_type.value}")
        self._behaviors[integration_type] = behavior

    def get(self, type_tag: Union[IntegrationType, str]) -> IntegrationTypeBehavior:
        integration_type = self._coerce(type_tag)
        behavior = self._behaviors.get(integration_type)
        if behavior is None:
            raise UnknownIntegrationTypeError(type_tag)
        return behavior

    def types(self) -> List[IntegrationType]:
        return list(self._behaviors)

    def ensure_complete(self) -> None:
        missing = [t.value for t in IntegrationType if t not in self._behaviors]
        if missing:
            raise ValueError(f"No behavior registered for integration types: {', '.join(missing)}")
