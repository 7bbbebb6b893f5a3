"""Pydantic schemas for integration records and lifecycle results."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.integration import IntegrationStatus, IntegrationType


class NewIntegration(BaseModel):
    """Candidate record passed through ``pre_create`` before insert."""

    type: IntegrationType
    name: str = Field(min_length=1)
    status: IntegrationStatus = IntegrationStatus.ACTIVE
    metadata: Optional[Dict[str, Any]] = None


class IntegrationUpdate(BaseModel):
    """Patch applied by ``update_integration``. The type is not patchable."""

    name: Optional[str] = Field(default=None, min_length=1)
    status: Optional[IntegrationStatus] = None
    metadata: Optional[Dict[str, Any]] = None


class IntegrationRead(BaseModel):
    id: int
    type: IntegrationType
    name: str
    status: IntegrationStatus
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class IntegrationListResponse(BaseModel):
    integrations: List[IntegrationRead]
    total: int


class GithubRepoIntegrationMetadata(BaseModel):
    """Typed view over a ``github`` integration's metadata. Unknown keys are kept."""

    repo: Optional[str] = None
    branch: str = "main"
    features: List[str] = Field(default_factory=list)
    github_app_id: Optional[int] = None
    installation_id: Optional[int] = None
    last_access_check: Optional[str] = None
    access_error: Optional[str] = None

    model_config = {"extra": "allow"}


# Lifecycle results


class IntegrationError(BaseModel):
    status_code: int
    error: str


class IntegrationResponse(BaseModel):
    result: Optional[IntegrationRead] = None
    error: Optional[IntegrationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


class AccessCheckResult(BaseModel):
    has_access: bool
    status: IntegrationStatus


class AccessCheckError(BaseModel):
    code: int
    reason: str
    context: Optional[Dict[str, Any]] = None


class AccessCheckResponse(BaseModel):
    result: Optional[AccessCheckResult] = None
    error: Optional[AccessCheckError] = None
